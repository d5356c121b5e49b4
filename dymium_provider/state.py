"""Token lifecycle states.

``TokenState`` is a closed union of small frozen dataclasses. Transitions are
made only by the TokenManager:

    Idle | Failed | Authenticated -> Authenticating -> Verifying -> Authenticated
                                                   \\-> Failed
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Union

from .errors import CATEGORY_GENERIC, category_for


@dataclass(frozen=True)
class Idle:
    """No attempt made yet, or logged out."""

    name = "idle"


@dataclass(frozen=True)
class Authenticating:
    """A grant (or static key setup) is in flight."""

    name = "authenticating"


@dataclass(frozen=True)
class Verifying:
    """A credential was obtained; the endpoint check is in flight."""

    name = "verifying"


@dataclass(frozen=True)
class Authenticated:
    """A usable credential.

    Static keys get an expiry far in the future rather than none at all.
    """

    token: str
    expires_at: datetime

    name = "authenticated"

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now > expires_at


@dataclass(frozen=True)
class Failed:
    """The last attempt failed. No previous credential is retained."""

    error: str
    category: str = CATEGORY_GENERIC

    name = "failed"

    @classmethod
    def from_error(cls, error: BaseException) -> "Failed":
        return cls(error=str(error), category=category_for(error))


TokenState = Union[Idle, Authenticating, Verifying, Authenticated, Failed]


def state_to_dict(state: TokenState) -> dict[str, Any]:
    """Serialize a state for JSON output. The token itself is never included."""
    if isinstance(state, Authenticated):
        return {"type": state.name, "expiresAt": state.expires_at.isoformat()}
    if isinstance(state, Failed):
        return {"type": state.name, "error": state.error, "category": state.category}
    return {"type": state.name}


def status_text(state: TokenState) -> str:
    """One-line human status for a state."""
    if isinstance(state, Idle):
        return "Status: Not configured"
    if isinstance(state, Authenticating):
        return "Status: Connecting..."
    if isinstance(state, Verifying):
        return "Status: Verifying endpoint..."
    if isinstance(state, Authenticated):
        return f"Status: Connected (expires {state.expires_at.astimezone().strftime('%H:%M')})"
    if isinstance(state, Failed):
        return f"Status: {state.category.capitalize()}"
    raise TypeError(f"Unknown token state: {state!r}")
