"""OAuth token grants against the issuer's token endpoint.

Only the two grants the provider needs are implemented:
1. Resource-owner password grant
2. Refresh-token grant

Both POST form-encoded ``grant_type``, ``client_id`` and ``client_secret``
plus grant-specific fields. Any non-2xx answer becomes AuthFailedError.
"""

import logging
from typing import Any

import httpx

from .config import AppConfig
from .errors import (
    AuthFailedError,
    HttpError,
    InvalidResponseError,
    MissingClientSecretError,
    MissingPasswordError,
)
from .tokens import TokenResponse

logger = logging.getLogger(__name__)

# Grant requests must not hold the manager lock longer than this
GRANT_TIMEOUT = 30.0


def create_grant_client() -> httpx.AsyncClient:
    """Create the HTTP client used for grants.

    Self-signed issuer certificates are accepted.
    """
    return httpx.AsyncClient(timeout=GRANT_TIMEOUT, verify=False)


def _require_client_secret(config: AppConfig) -> str:
    if not config.client_secret:
        raise MissingClientSecretError()
    return config.client_secret


async def request_token(
    token_url: str,
    form: dict[str, str],
    http_client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    """POST a grant to the token endpoint.

    Args:
        token_url: The token endpoint URL
        form: Form fields for the grant
        http_client: Optional HTTP client

    Returns:
        Parsed TokenResponse

    Raises:
        AuthFailedError: If the endpoint answers non-2xx
        HttpError: On network/transport failure
        InvalidResponseError: If the 2xx body is not a usable token response
    """
    http = http_client or create_grant_client()
    should_close = http_client is None

    try:
        response = await http.post(
            token_url,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        if not 200 <= response.status_code < 300:
            body = response.text or "Unknown error"
            raise AuthFailedError(response.status_code, body)

        try:
            data: Any = response.json()
        except ValueError as e:
            raise InvalidResponseError("Token endpoint returned invalid JSON") from e

        if not isinstance(data, dict):
            raise InvalidResponseError("Token endpoint returned a non-object body")

        return TokenResponse.from_token_response(data)

    except httpx.RequestError as e:
        raise HttpError(f"HTTP error: {e}") from e
    finally:
        if should_close:
            await http.aclose()


async def password_grant(
    config: AppConfig,
    http_client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    """Exchange username and password for tokens.

    Raises:
        MissingClientSecretError: If no client secret is configured
        MissingPasswordError: If no password is configured
        InvalidUrlError: If the issuer URL is unusable
    """
    client_secret = _require_client_secret(config)
    if not config.password:
        raise MissingPasswordError()

    token_url = config.token_endpoint_url()
    form = {
        "grant_type": "password",
        "client_id": config.client_id,
        "client_secret": client_secret,
        "username": config.username,
        "password": config.password,
    }

    logger.debug(f"Password grant for {config.username} at {token_url}")
    return await request_token(token_url, form, http_client)


async def refresh_token_grant(
    config: AppConfig,
    refresh_token: str,
    http_client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    """Exchange a refresh token for new tokens.

    The caller decides what a rejection means for the stored refresh token.

    Raises:
        MissingClientSecretError: If no client secret is configured
        InvalidUrlError: If the issuer URL is unusable
    """
    client_secret = _require_client_secret(config)

    token_url = config.token_endpoint_url()
    form = {
        "grant_type": "refresh_token",
        "client_id": config.client_id,
        "client_secret": client_secret,
        "refresh_token": refresh_token,
    }

    logger.debug(f"Refresh token grant at {token_url}")
    return await request_token(token_url, form, http_client)
