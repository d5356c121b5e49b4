"""Live check that the LLM gateway accepts a credential.

Issues ``GET {effective endpoint}/models`` (``/v1/models`` when the endpoint
has no version segment) with the candidate bearer token. No retries here;
retry policy belongs to the scheduler and manual refresh.
"""

import logging

import httpx

from .config import VERSION_SEGMENT, AppConfig
from .errors import (
    EndpointError,
    EndpointTimeoutError,
    HttpError,
    UnauthorizedError,
    UnreachableError,
)

logger = logging.getLogger(__name__)

VERIFY_TIMEOUT = 30.0


def models_url(effective_endpoint: str) -> str:
    """Build the model-listing URL for an effective endpoint."""
    base = effective_endpoint.rstrip("/")
    if base.endswith(VERSION_SEGMENT):
        return f"{base}/models"
    return f"{base}{VERSION_SEGMENT}/models"


def extract_hostname(url: str) -> str:
    """Extract the hostname (no scheme, port or path) for the Host header.

    Routing layers such as an Istio VirtualService match on the bare
    hostname, so the port is dropped.
    """
    if "://" not in url:
        url = f"http://{url}"
    try:
        host = httpx.URL(url).host
    except httpx.InvalidURL:
        return "localhost"
    return host or "localhost"


class EndpointVerifier:
    """Checks reachability and authorization against the LLM gateway."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        """Initialize the verifier.

        Args:
            http_client: Optional HTTP client. When omitted, a client that
                accepts self-signed certificates is created per call.
        """
        self._http_client = http_client

    async def verify(self, token: str, config: AppConfig) -> None:
        """Verify that the endpoint accepts the token.

        Args:
            token: Candidate bearer token or static key
            config: Current configuration (for the effective endpoint)

        Raises:
            UnauthorizedError: Endpoint answered 401
            UnreachableError: Connection failed
            EndpointTimeoutError: Request timed out
            EndpointError: Any other non-2xx status
            HttpError: Any other transport failure
        """
        effective = config.effective_endpoint()
        url = models_url(effective)
        logger.info(f"Verifying endpoint: GET {url}")

        http = self._http_client or httpx.AsyncClient(timeout=VERIFY_TIMEOUT, verify=False)
        should_close = self._http_client is None

        try:
            response = await http.get(
                url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Host": extract_hostname(url),
                },
            )
        except httpx.TimeoutException as e:
            raise EndpointTimeoutError(f"LLM endpoint timed out ({effective})") from e
        except httpx.ConnectError as e:
            raise UnreachableError(f"Cannot reach LLM endpoint ({effective})") from e
        except httpx.RequestError as e:
            raise HttpError(f"LLM endpoint error: {e}") from e
        finally:
            if should_close:
                await http.aclose()

        status = response.status_code
        if 200 <= status < 300:
            logger.info(f"Endpoint verified: {url} returned {status}")
            return

        if status == 401:
            logger.warning(f"Endpoint rejected token: {status}")
            raise UnauthorizedError("LLM endpoint rejected the API key (401 Unauthorized)")

        logger.warning(f"Endpoint returned {status}: {response.text}")
        raise EndpointError(status)
