"""Tests for token states."""

from datetime import datetime, timedelta, timezone

import pytest

from dymium_provider.errors import CATEGORY_TIMEOUT, EndpointTimeoutError
from dymium_provider.state import (
    Authenticated,
    Authenticating,
    Failed,
    Idle,
    Verifying,
    state_to_dict,
    status_text,
)


class TestAuthenticated:
    """Tests for Authenticated expiry."""

    def test_not_expired_before_expiry(self) -> None:
        state = Authenticated(token="t", expires_at=datetime.now(timezone.utc) + timedelta(minutes=5))
        assert not state.is_expired()

    def test_expired_after_expiry(self) -> None:
        state = Authenticated(token="t", expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
        assert state.is_expired()

    def test_explicit_now(self) -> None:
        """Test the comparison point can be supplied."""
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        state = Authenticated(token="t", expires_at=expires)
        assert not state.is_expired(expires)
        assert state.is_expired(expires + timedelta(seconds=1))


class TestFailed:
    """Tests for Failed construction."""

    def test_from_error_derives_category(self) -> None:
        state = Failed.from_error(EndpointTimeoutError("LLM endpoint timed out (x)"))
        assert state.error == "LLM endpoint timed out (x)"
        assert state.category == CATEGORY_TIMEOUT


class TestSerialization:
    """Tests for state_to_dict and status_text."""

    def test_token_never_serialized(self) -> None:
        """Test the secret is left out of the JSON form."""
        state = Authenticated(token="secret-token", expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc))
        data = state_to_dict(state)

        assert data == {"type": "authenticated", "expiresAt": "2030-01-01T00:00:00+00:00"}

    def test_simple_states(self) -> None:
        assert state_to_dict(Idle()) == {"type": "idle"}
        assert state_to_dict(Verifying()) == {"type": "verifying"}

    def test_failed_dict(self) -> None:
        assert state_to_dict(Failed(error="boom", category="error")) == {
            "type": "failed",
            "error": "boom",
            "category": "error",
        }

    @pytest.mark.parametrize(
        "state, expected",
        [
            (Idle(), "Status: Not configured"),
            (Authenticating(), "Status: Connecting..."),
            (Verifying(), "Status: Verifying endpoint..."),
            (Failed(error="x", category="endpoint unreachable"), "Status: Endpoint unreachable"),
        ],
    )
    def test_status_text(self, state, expected: str) -> None:
        assert status_text(state) == expected

    def test_status_text_connected(self) -> None:
        """Test the connected line shows a local HH:MM expiry."""
        state = Authenticated(token="t", expires_at=datetime.now(timezone.utc) + timedelta(hours=1))
        assert status_text(state).startswith("Status: Connected (expires ")

    def test_states_are_immutable(self) -> None:
        """Test frozen dataclasses reject mutation."""
        state = Failed(error="x")
        with pytest.raises(AttributeError):
            state.error = "y"  # type: ignore[misc]
