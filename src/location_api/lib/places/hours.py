"""Opening-hours normalization into the stored weekly/special-day shapes.

Weekly hours are stored as ``{"monday": [{"open": "09:00", "close": "17:00"}], ...}``
and special days as ``[{"date": "2025-12-25", "closed": True}, ...]``.
"""

import re
from typing import Any

from loguru import logger

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Google Places day numbering starts at Sunday
_GOOGLE_DAYS = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")

_OSM_DAYS = {"mo": 0, "tu": 1, "we": 2, "th": 3, "fr": 4, "sa": 5, "su": 6}
_OSM_RULE_RE = re.compile(r"^(?P<days>[A-Za-z,\- ]+?)\s+(?P<times>off|closed|[0-9:,\- ]+)$")
_OSM_SPAN_RE = re.compile(r"^(\d{1,2}):(\d{2})-(\d{1,2}):(\d{2})$")


def _hhmm(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def parse_google_periods(opening_hours: dict[str, Any] | None) -> dict[str, list[dict[str, str]]] | None:
    """Convert a Places API ``regularOpeningHours`` object to the weekly map.

    A single period opening Sunday 00:00 with no close means open around the
    clock and maps to ``00:00``-``24:00`` every day.
    """
    if not opening_hours:
        return None
    periods = opening_hours.get("periods") or []
    if not periods:
        return None

    if len(periods) == 1 and "close" not in periods[0]:
        return {day: [{"open": "00:00", "close": "24:00"}] for day in WEEKDAYS}

    weekly: dict[str, list[dict[str, str]]] = {}
    for period in periods:
        try:
            opened = period["open"]
            closed = period.get("close") or {}
            day = _GOOGLE_DAYS[int(opened["day"])]
            span = {
                "open": _hhmm(int(opened.get("hour", 0)), int(opened.get("minute", 0))),
                "close": _hhmm(int(closed.get("hour", 24)), int(closed.get("minute", 0))),
            }
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed opening period: {e}")
            continue
        weekly.setdefault(day, []).append(span)

    return {day: weekly[day] for day in WEEKDAYS if day in weekly} or None


def parse_google_special_days(current_hours: dict[str, Any] | None) -> list[dict[str, Any]] | None:
    """Extract special days (holidays, exceptional closures) from ``currentOpeningHours``.

    A special day is ``closed`` when no current period opens on that date.
    """
    if not current_hours:
        return None
    special_days = current_hours.get("specialDays") or []
    if not special_days:
        return None

    open_dates: set[str] = set()
    for period in current_hours.get("periods") or []:
        date = (period.get("open") or {}).get("date")
        if date:
            open_dates.add(_iso_date(date))

    result: list[dict[str, Any]] = []
    for entry in special_days:
        date = entry.get("date")
        if not date:
            continue
        iso = _iso_date(date)
        result.append({"date": iso, "closed": iso not in open_dates})
    return result or None


def _iso_date(date: dict[str, int]) -> str:
    return f"{int(date['year']):04d}-{int(date['month']):02d}-{int(date['day']):02d}"


def parse_osm_opening_hours(value: str | None) -> dict[str, list[dict[str, str]]] | None:
    """Parse the common subset of the OSM ``opening_hours`` syntax.

    Handles ``24/7`` and rules such as ``Mo-Fr 09:00-17:00; Sa 10:00-14:00; Su off``.
    Anything richer (public holidays, month ranges) yields None.
    """
    if not value:
        return None
    value = value.strip()
    if value == "24/7":
        return {day: [{"open": "00:00", "close": "24:00"}] for day in WEEKDAYS}

    weekly: dict[str, list[dict[str, str]]] = {}
    for rule in (r.strip() for r in value.split(";")):
        if not rule:
            continue
        match = _OSM_RULE_RE.match(rule)
        if match is None:
            return None
        days = _expand_osm_days(match.group("days"))
        if days is None:
            return None
        times = match.group("times").strip().lower()
        if times in ("off", "closed"):
            for day in days:
                weekly.pop(day, None)
            continue
        spans: list[dict[str, str]] = []
        for part in times.split(","):
            span = _OSM_SPAN_RE.match(part.strip())
            if span is None:
                return None
            h1, m1, h2, m2 = (int(g) for g in span.groups())
            spans.append({"open": _hhmm(h1, m1), "close": _hhmm(h2, m2)})
        for day in days:
            weekly[day] = list(spans)

    return {day: weekly[day] for day in WEEKDAYS if day in weekly} or None


def _expand_osm_days(spec: str) -> list[str] | None:
    days: list[str] = []
    for part in spec.replace(" ", "").split(","):
        if "-" in part:
            start, _, end = part.partition("-")
            first = _OSM_DAYS.get(start.lower())
            last = _OSM_DAYS.get(end.lower())
            if first is None or last is None:
                return None
            index = first
            while True:
                days.append(WEEKDAYS[index])
                if index == last:
                    break
                index = (index + 1) % 7
        else:
            index = _OSM_DAYS.get(part.lower())
            if index is None:
                return None
            days.append(WEEKDAYS[index])
    return days
