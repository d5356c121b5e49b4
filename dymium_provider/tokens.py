"""Token data structures and the on-disk credential artifact.

The credential artifact is a single plaintext token at ``~/.dymium/token``
readable only by its owner. It is what OpenCode's auth plugin and the
config synchronizer read as "the current credential".
"""

import logging
import stat
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .config import get_token_path
from .errors import ArtifactIOError, InvalidResponseError

logger = logging.getLogger(__name__)

# Lifetime given to static keys, which never expire on their own
STATIC_KEY_LIFETIME = timedelta(days=365)


@dataclass
class TokenResponse:
    """Successful response from the token endpoint.

    Attributes:
        access_token: The access token string
        expires_in: Access token lifetime in seconds
        token_type: Token type (typically "Bearer")
        refresh_token: Optional new refresh token
        refresh_expires_in: Optional refresh token lifetime in seconds
        received_at: When the response was received (UTC)
    """

    access_token: str
    expires_in: int
    token_type: str = "Bearer"
    refresh_token: str | None = None
    refresh_expires_in: int | None = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def expires_at(self) -> datetime:
        """When the access token expires (UTC)."""
        return self.received_at + timedelta(seconds=self.expires_in)

    def has_refresh_token(self) -> bool:
        return self.refresh_token is not None and len(self.refresh_token) > 0

    @classmethod
    def from_token_response(cls, response: dict[str, Any]) -> "TokenResponse":
        """Create from the token endpoint's JSON body.

        Raises:
            InvalidResponseError: If access_token or expires_in is unusable
        """
        access_token = response.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise InvalidResponseError("Token response missing access_token")

        try:
            expires_in = int(response["expires_in"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidResponseError("Token response missing expires_in") from e

        refresh_expires_in = response.get("refresh_expires_in")
        if refresh_expires_in is not None:
            try:
                refresh_expires_in = int(refresh_expires_in)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed refresh_expires_in: {refresh_expires_in!r}")
                refresh_expires_in = None

        refresh_token = response.get("refresh_token")
        if not isinstance(refresh_token, str):
            refresh_token = None

        return cls(
            access_token=access_token,
            expires_in=expires_in,
            token_type=response.get("token_type", "Bearer"),
            refresh_token=refresh_token,
            refresh_expires_in=refresh_expires_in,
        )


class TokenFile:
    """The credential artifact file."""

    def __init__(self, path: Path | None = None):
        self.path = path or get_token_path()

    def write(self, token: str) -> None:
        """Overwrite the artifact with owner-only permissions.

        Raises:
            ArtifactIOError: If the file cannot be written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(token)
            self.path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0600
        except OSError as e:
            raise ArtifactIOError(f"Failed to write token file {self.path}: {e}") from e
        logger.info(f"Token written to {self.path}")

    def read(self) -> str | None:
        """Read the current token, or None if missing, empty or unreadable."""
        try:
            token = self.path.read_text().strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return None
        return token or None

    def delete(self) -> bool:
        """Delete the artifact.

        Returns:
            True if a file was removed, False if it was already absent
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to remove token file {self.path}: {e}")
            return False
        logger.info(f"Cleared token file {self.path}")
        return True

    def exists(self) -> bool:
        return self.path.exists()
