"""Tests for error kinds and failure categories."""

import pytest

from dymium_provider.errors import (
    CATEGORY_CONFIG,
    CATEGORY_GENERIC,
    CATEGORY_TIMEOUT,
    CATEGORY_UNAUTHORIZED,
    CATEGORY_UNREACHABLE,
    AuthFailedError,
    ConfigError,
    ConfigSyncError,
    EndpointError,
    EndpointTimeoutError,
    ErrorKind,
    HttpError,
    MissingClientSecretError,
    UnauthorizedError,
    UnreachableError,
    category_for,
    classify_error_text,
)


class TestCategoryFromKind:
    """Tests for categories derived from structured kinds."""

    def test_verification_errors(self) -> None:
        """Test each verification failure maps to its category."""
        assert UnauthorizedError("x").category == CATEGORY_UNAUTHORIZED
        assert EndpointTimeoutError("x").category == CATEGORY_TIMEOUT
        assert UnreachableError("x").category == CATEGORY_UNREACHABLE
        assert EndpointError(500).category == CATEGORY_GENERIC

    def test_auth_failed_401_is_unauthorized(self) -> None:
        """Test a 401 from the issuer counts as unauthorized."""
        assert AuthFailedError(401, "nope").category == CATEGORY_UNAUTHORIZED
        assert AuthFailedError(400, "bad").category == CATEGORY_GENERIC

    def test_config_sync_is_config_error(self) -> None:
        """Test consumer sync failures are config errors."""
        assert ConfigSyncError("x").category == CATEGORY_CONFIG
        assert ConfigSyncError("x").kind == ErrorKind.CONFIG_SYNC
        assert isinstance(ConfigSyncError("x"), ConfigError)
        assert ConfigError("No static API key configured").category == CATEGORY_CONFIG

    def test_category_does_not_depend_on_text(self) -> None:
        """Test misleading text does not change a kind-derived category."""
        assert HttpError("connection timed out 401").category == CATEGORY_GENERIC

    def test_messages(self) -> None:
        """Test default messages."""
        assert str(MissingClientSecretError()) == "Missing client secret"
        assert str(AuthFailedError(401, "denied")) == "Auth failed (401): denied"
        assert str(EndpointError(404)) == "LLM endpoint returned 404, check endpoint URL"


class TestClassifyErrorText:
    """Tests for the text classifier."""

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("HTTP 401 returned", CATEGORY_UNAUTHORIZED),
            ("Invalid API Key", CATEGORY_UNAUTHORIZED),
            ("invalid OIDC token", CATEGORY_UNAUTHORIZED),
            ("request timed out", CATEGORY_TIMEOUT),
            ("Timeout waiting", CATEGORY_TIMEOUT),
            ("Cannot reach host", CATEGORY_UNREACHABLE),
            ("connection refused", CATEGORY_UNREACHABLE),
            ("Failed to update OpenCode config: boom", CATEGORY_CONFIG),
            ("something else", CATEGORY_GENERIC),
        ],
    )
    def test_rules(self, message: str, expected: str) -> None:
        """Test each rule."""
        assert classify_error_text(message) == expected

    def test_first_matching_rule_wins(self) -> None:
        """Test rule order: unauthorized beats timeout beats config."""
        assert classify_error_text("unauthorized after timeout") == CATEGORY_UNAUTHORIZED
        assert classify_error_text("config timed out") == CATEGORY_TIMEOUT

    def test_category_for_plain_exception(self) -> None:
        """Test non-Dymium exceptions fall back to the text classifier."""
        assert category_for(RuntimeError("connection reset")) == CATEGORY_UNREACHABLE
        assert category_for(UnreachableError("whatever")) == CATEGORY_UNREACHABLE
