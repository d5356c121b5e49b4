"""Error types for Dymium Provider.

Every failure that can end an authentication attempt is a ``DymiumError``
subclass carrying a structured ``ErrorKind``. The user-facing failure
category ("unauthorized", "endpoint timeout", ...) is derived from that kind
rather than from the error text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Structured kind of a DymiumError."""

    GENERIC = "generic"
    INVALID_URL = "invalid_url"
    MISSING_CLIENT_SECRET = "missing_client_secret"
    MISSING_PASSWORD = "missing_password"
    AUTH_FAILED = "auth_failed"
    INVALID_RESPONSE = "invalid_response"
    HTTP = "http"
    CONFIG = "config"
    CONFIG_SYNC = "config_sync"
    IO = "io"
    KEYSTORE = "keystore"
    UNAUTHORIZED = "unauthorized"
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    ENDPOINT = "endpoint"


# User-facing failure categories
CATEGORY_UNAUTHORIZED = "unauthorized"
CATEGORY_TIMEOUT = "endpoint timeout"
CATEGORY_UNREACHABLE = "endpoint unreachable"
CATEGORY_CONFIG = "config error"
CATEGORY_GENERIC = "error"


class DymiumError(Exception):
    """Base class for all Dymium Provider errors."""

    kind: ErrorKind = ErrorKind.GENERIC

    @property
    def category(self) -> str:
        """User-facing failure category for this error."""
        return category_for_kind(self.kind)


class InvalidUrlError(DymiumError):
    """A configured URL could not be used."""

    kind = ErrorKind.INVALID_URL


class MissingClientSecretError(DymiumError):
    """OAuth mode is active but no client secret is configured."""

    kind = ErrorKind.MISSING_CLIENT_SECRET

    def __init__(self, message: str = "Missing client secret"):
        super().__init__(message)


class MissingPasswordError(DymiumError):
    """OAuth mode is active but no password is configured."""

    kind = ErrorKind.MISSING_PASSWORD

    def __init__(self, message: str = "Missing password"):
        super().__init__(message)


class AuthFailedError(DymiumError):
    """The token endpoint rejected a grant request."""

    kind = ErrorKind.AUTH_FAILED

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Auth failed ({status}): {body}")

    @property
    def category(self) -> str:
        if self.status == 401:
            return CATEGORY_UNAUTHORIZED
        return CATEGORY_GENERIC


class InvalidResponseError(DymiumError):
    """The token endpoint answered 2xx with an unusable body."""

    kind = ErrorKind.INVALID_RESPONSE


class HttpError(DymiumError):
    """Network or transport failure talking to the token endpoint."""

    kind = ErrorKind.HTTP


class ConfigError(DymiumError):
    """Local configuration could not be used or persisted."""

    kind = ErrorKind.CONFIG


class ConfigSyncError(ConfigError):
    """The OpenCode documents could not be read, merged or written."""

    kind = ErrorKind.CONFIG_SYNC


class ArtifactIOError(DymiumError):
    """The credential artifact could not be written."""

    kind = ErrorKind.IO


class KeystoreError(DymiumError):
    """The OS keyring backend failed."""

    kind = ErrorKind.KEYSTORE


class VerificationError(DymiumError):
    """The LLM endpoint check did not succeed."""

    kind = ErrorKind.ENDPOINT


class UnauthorizedError(VerificationError):
    """The LLM endpoint rejected the credential (HTTP 401)."""

    kind = ErrorKind.UNAUTHORIZED


class UnreachableError(VerificationError):
    """The LLM endpoint could not be connected to."""

    kind = ErrorKind.UNREACHABLE


class EndpointTimeoutError(VerificationError):
    """The LLM endpoint did not answer in time."""

    kind = ErrorKind.TIMEOUT


class EndpointError(VerificationError):
    """The LLM endpoint answered with an unexpected non-2xx status."""

    kind = ErrorKind.ENDPOINT

    def __init__(self, status: int, message: str | None = None):
        self.status = status
        super().__init__(message or f"LLM endpoint returned {status}, check endpoint URL")


_KIND_CATEGORIES = {
    ErrorKind.UNAUTHORIZED: CATEGORY_UNAUTHORIZED,
    ErrorKind.TIMEOUT: CATEGORY_TIMEOUT,
    ErrorKind.UNREACHABLE: CATEGORY_UNREACHABLE,
    ErrorKind.CONFIG: CATEGORY_CONFIG,
    ErrorKind.CONFIG_SYNC: CATEGORY_CONFIG,
}


def category_for_kind(kind: ErrorKind) -> str:
    """Map an error kind to its user-facing failure category."""
    return _KIND_CATEGORIES.get(kind, CATEGORY_GENERIC)


# Checked in order; first match wins
_TEXT_RULES: list[tuple[tuple[str, ...], str]] = [
    (
        ("401", "unauthorized", "invalid api key", "invalid oidc token", "invalid token"),
        CATEGORY_UNAUTHORIZED,
    ),
    (("timed out", "timeout"), CATEGORY_TIMEOUT),
    (("cannot reach", "unreachable", "connection"), CATEGORY_UNREACHABLE),
    (("failed to update opencode config", "config"), CATEGORY_CONFIG),
]


def classify_error_text(message: str) -> str:
    """Classify a free-form error message into a failure category.

    Case-insensitive substring matching. Used only for messages that did not
    originate from a DymiumError; those carry their kind instead.

    Args:
        message: Error message text

    Returns:
        One of the CATEGORY_* strings
    """
    normalized = message.lower()
    for needles, category in _TEXT_RULES:
        if any(needle in normalized for needle in needles):
            return category
    return CATEGORY_GENERIC


def category_for(error: BaseException) -> str:
    """Failure category for any exception."""
    if isinstance(error, DymiumError):
        return error.category
    return classify_error_text(str(error))
