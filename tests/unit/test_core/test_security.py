"""Unit tests for shared-secret verification."""

from location_api.core.security import extract_bearer_token, verify_shared_secret


class TestExtractBearerToken:
    """Tests for Authorization header parsing."""

    def test_bearer_token(self) -> None:
        assert extract_bearer_token("Bearer abc123") == "abc123"

    def test_scheme_is_case_insensitive(self) -> None:
        assert extract_bearer_token("bearer abc123") == "abc123"

    def test_missing_header(self) -> None:
        assert extract_bearer_token(None) is None
        assert extract_bearer_token("") is None

    def test_other_scheme(self) -> None:
        assert extract_bearer_token("Basic dXNlcjpwYXNz") is None

    def test_empty_token(self) -> None:
        assert extract_bearer_token("Bearer   ") is None


class TestVerifySharedSecret:
    """Tests for constant-time secret comparison."""

    def test_matching_secret(self) -> None:
        assert verify_shared_secret("s3cret-value-0123", "s3cret-value-0123") is True

    def test_wrong_secret(self) -> None:
        assert verify_shared_secret("wrong-value-00000", "s3cret-value-0123") is False

    def test_missing_secret(self) -> None:
        assert verify_shared_secret(None, "s3cret-value-0123") is False
        assert verify_shared_secret("", "s3cret-value-0123") is False

    def test_empty_expected_never_matches(self) -> None:
        assert verify_shared_secret("", "") is False
