"""Unit tests for opening-hours normalization."""

from location_api.lib.places.hours import (
    WEEKDAYS,
    parse_google_periods,
    parse_google_special_days,
    parse_osm_opening_hours,
)


class TestParseGooglePeriods:
    """Tests for Places API regularOpeningHours parsing."""

    def test_weekday_periods(self) -> None:
        hours = {
            "periods": [
                {"open": {"day": 1, "hour": 9, "minute": 0}, "close": {"day": 1, "hour": 17, "minute": 30}},
                {"open": {"day": 6, "hour": 10, "minute": 0}, "close": {"day": 6, "hour": 14, "minute": 0}},
            ]
        }
        assert parse_google_periods(hours) == {
            "monday": [{"open": "09:00", "close": "17:30"}],
            "saturday": [{"open": "10:00", "close": "14:00"}],
        }

    def test_sunday_is_day_zero(self) -> None:
        hours = {"periods": [{"open": {"day": 0, "hour": 11}, "close": {"day": 0, "hour": 16}}] * 2}
        result = parse_google_periods(hours)
        assert result is not None
        assert list(result) == ["sunday"]
        assert len(result["sunday"]) == 2

    def test_always_open(self) -> None:
        result = parse_google_periods({"periods": [{"open": {"day": 0, "hour": 0, "minute": 0}}]})
        assert result is not None
        assert list(result) == list(WEEKDAYS)
        assert result["wednesday"] == [{"open": "00:00", "close": "24:00"}]

    def test_missing_hours(self) -> None:
        assert parse_google_periods(None) is None
        assert parse_google_periods({"periods": []}) is None

    def test_malformed_period_skipped(self) -> None:
        hours = {
            "periods": [
                {"close": {"day": 1, "hour": 17}},
                {"open": {"day": 2, "hour": 8}, "close": {"day": 2, "hour": 12}},
            ]
        }
        assert parse_google_periods(hours) == {"tuesday": [{"open": "08:00", "close": "12:00"}]}


class TestParseGoogleSpecialDays:
    """Tests for currentOpeningHours special days."""

    def test_closed_and_open_special_days(self) -> None:
        current = {
            "periods": [{"open": {"date": {"year": 2025, "month": 12, "day": 24}, "hour": 9}}],
            "specialDays": [
                {"date": {"year": 2025, "month": 12, "day": 24}},
                {"date": {"year": 2025, "month": 12, "day": 25}},
            ],
        }
        assert parse_google_special_days(current) == [
            {"date": "2025-12-24", "closed": False},
            {"date": "2025-12-25", "closed": True},
        ]

    def test_no_special_days(self) -> None:
        assert parse_google_special_days(None) is None
        assert parse_google_special_days({"periods": []}) is None


class TestParseOsmOpeningHours:
    """Tests for the OSM opening_hours subset."""

    def test_around_the_clock(self) -> None:
        result = parse_osm_opening_hours("24/7")
        assert result is not None
        assert result["sunday"] == [{"open": "00:00", "close": "24:00"}]

    def test_day_ranges(self) -> None:
        result = parse_osm_opening_hours("Mo-Fr 09:00-17:00; Sa 10:00-14:00; Su off")
        assert result is not None
        assert list(result) == ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
        assert result["friday"] == [{"open": "09:00", "close": "17:00"}]
        assert result["saturday"] == [{"open": "10:00", "close": "14:00"}]

    def test_split_shifts_and_day_lists(self) -> None:
        result = parse_osm_opening_hours("Tu,Th 08:00-12:00,13:00-17:00")
        assert result == {
            "tuesday": [{"open": "08:00", "close": "12:00"}, {"open": "13:00", "close": "17:00"}],
            "thursday": [{"open": "08:00", "close": "12:00"}, {"open": "13:00", "close": "17:00"}],
        }

    def test_off_overrides_earlier_rule(self) -> None:
        result = parse_osm_opening_hours("Mo-Su 07:00-22:00; Su off")
        assert result is not None
        assert "sunday" not in result
        assert "saturday" in result

    def test_unsupported_syntax_returns_none(self) -> None:
        assert parse_osm_opening_hours("Mo-Fr 09:00-17:00; PH off") is None
        assert parse_osm_opening_hours("sunrise-sunset") is None
        assert parse_osm_opening_hours(None) is None
