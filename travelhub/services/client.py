"""
AmadeusClient - async HTTP client for the Amadeus self-service APIs.

Handles:
- OAuth2 client-credentials tokens, refreshed ahead of expiry
- One transparent re-authentication when a request comes back 401
- Mapping of HTTP and network failures onto the service error taxonomy
"""

from datetime import datetime, timedelta
from typing import Any

import httpx
from loguru import logger

from travelhub.services.deduplicator import RequestDeduplicator
from travelhub.services.errors import (
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamError,
    UpstreamPermanentError,
    UpstreamTransientError,
)

TOKEN_ENDPOINT = "/v1/security/oauth2/token"


class AmadeusClient:
    """
    Thin async wrapper around the Amadeus REST API.

    Usage:
        async with AmadeusClient(base_url, api_key, api_secret) as client:
            data = await client.request(
                "GET",
                "/v1/reference-data/locations",
                params={"keyword": "PAR", "subType": "CITY"},
            )
    """

    SERVICE_ID = "amadeus"

    def __init__(
        self,
        base_url: str = "https://test.api.amadeus.com",
        api_key: str = "",
        api_secret: str = "",
        timeout: float = 30.0,
        token_refresh_buffer: timedelta = timedelta(minutes=5),
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._api_secret = api_secret
        self._timeout = timeout
        self._token_refresh_buffer = token_refresh_buffer

        self._token: str | None = None
        self._token_expiry: datetime | None = None
        self._token_requests = RequestDeduplicator(name="amadeus-token")

        # HTTP client (lazy initialization)
        self._http_client = http_client

    def is_configured(self) -> bool:
        return bool(self._api_key and self._api_secret)

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Make an authenticated request and return the decoded JSON body.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Path below the base URL, e.g. ``/v2/shopping/flight-offers``
            params: Query parameters; ``None`` values are dropped
            json_data: JSON body for POST requests
            timeout: Override request timeout

        Raises:
            RateLimitError: HTTP 429
            UpstreamTransientError: HTTP 5xx or network failure
            RequestTimeoutError: Request timed out
            NotFoundError: HTTP 404
            AuthenticationError: Credentials rejected
            UpstreamPermanentError: Any other 4xx
        """
        response = await self._send(method, endpoint, params, json_data, timeout)

        if response.status_code == 401:
            logger.info("Amadeus token rejected, refreshing and retrying once")
            self._token = None
            self._token_expiry = None
            response = await self._send(method, endpoint, params, json_data, timeout)

        self._raise_for_status(response, method, endpoint)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                f"Invalid JSON from {method} {endpoint}",
                service_id=self.SERVICE_ID,
                upstream_status=response.status_code,
            ) from e

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None,
        json_data: dict[str, Any] | None,
        timeout: float | None,
    ) -> httpx.Response:
        """Execute the actual HTTP request."""
        token = await self._ensure_token()
        client = await self._get_http_client()
        req_timeout = timeout or self._timeout

        try:
            return await client.request(
                method=method,
                url=f"{self.base_url}{endpoint}",
                params=_encode_params(params),
                json=json_data,
                headers={"Authorization": f"Bearer {token}"},
                timeout=req_timeout,
            )

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.SERVICE_ID, req_timeout) from e

        except httpx.RequestError as e:
            raise UpstreamTransientError(
                f"Network error calling {method} {endpoint}: {e}",
                service_id=self.SERVICE_ID,
            ) from e

    def _raise_for_status(
        self, response: httpx.Response, method: str, endpoint: str
    ) -> None:
        status = response.status_code
        if status < 400:
            return

        detail = _error_detail(response)
        logger.error(f"Amadeus API error: {method} {endpoint} -> HTTP {status}: {detail}")

        if status == 429:
            raise RateLimitError(self.SERVICE_ID, _retry_after(response))
        if status >= 500:
            raise UpstreamTransientError(
                f"Amadeus unavailable (HTTP {status}): {detail}",
                service_id=self.SERVICE_ID,
                upstream_status=status,
            )
        if status == 404:
            raise NotFoundError(detail, service_id=self.SERVICE_ID)
        if status in (401, 403):
            raise AuthenticationError(
                f"Amadeus rejected credentials: {detail}",
                service_id=self.SERVICE_ID,
                upstream_status=status,
            )
        raise UpstreamPermanentError(
            detail, service_id=self.SERVICE_ID, upstream_status=status
        )

    async def _ensure_token(self) -> str:
        """Return a valid access token, fetching one if needed."""
        if (
            self._token
            and self._token_expiry
            and datetime.now() < self._token_expiry - self._token_refresh_buffer
        ):
            return self._token

        # Concurrent requests share a single token fetch
        return await self._token_requests.dedupe("token", self._fetch_token)

    async def _fetch_token(self) -> str:
        if not self.is_configured():
            raise AuthenticationError(
                "Amadeus API credentials are not configured",
                service_id=self.SERVICE_ID,
            )

        client = await self._get_http_client()
        try:
            response = await client.post(
                f"{self.base_url}{TOKEN_ENDPOINT}",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._api_key,
                    "client_secret": self._api_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=min(self._timeout, 10.0),
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.SERVICE_ID, min(self._timeout, 10.0)) from e
        except httpx.RequestError as e:
            raise UpstreamTransientError(
                f"Network error during Amadeus authentication: {e}",
                service_id=self.SERVICE_ID,
            ) from e

        if response.status_code >= 500:
            raise UpstreamTransientError(
                f"Amadeus authentication unavailable (HTTP {response.status_code})",
                service_id=self.SERVICE_ID,
                upstream_status=response.status_code,
            )
        if response.status_code != 200:
            raise AuthenticationError(
                f"Authentication with Amadeus API failed: {_error_detail(response)}",
                service_id=self.SERVICE_ID,
                upstream_status=response.status_code,
            )

        try:
            payload = response.json()
            token = payload["access_token"]
            expires_in = int(payload.get("expires_in", 1799))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise AuthenticationError(
                f"Malformed Amadeus token response: {e!r}",
                service_id=self.SERVICE_ID,
                upstream_status=response.status_code,
            ) from e
        if not isinstance(token, str) or not token:
            raise AuthenticationError(
                "Amadeus token response has no access token",
                service_id=self.SERVICE_ID,
                upstream_status=response.status_code,
            )

        self._token = token
        self._token_expiry = datetime.now() + timedelta(seconds=expires_in)
        logger.info("Amadeus token refreshed successfully")
        return self._token

    async def health_check(self) -> bool:
        """Check that a token can be obtained."""
        try:
            await self._ensure_token()
            return True
        except Exception as e:
            logger.warning(f"Amadeus health check failed: {e}")
            return False

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

        await self._token_requests.cancel_all()
        logger.debug("AmadeusClient closed")

    async def __aenter__(self) -> "AmadeusClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _encode_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    """Drop empty values and render booleans the way Amadeus expects."""
    if not params:
        return None
    encoded: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        encoded[key] = value
    return encoded


def _error_detail(response: httpx.Response) -> str:
    """Join the ``errors[].detail`` entries of an Amadeus error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"

    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        details = [
            str(e.get("detail") or e.get("title") or e.get("code"))
            for e in errors
            if isinstance(e, dict)
        ]
        if details:
            return "; ".join(details)

    if isinstance(body, dict) and body.get("error_description"):
        return str(body["error_description"])
    return f"HTTP {response.status_code}"


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
