"""Rate-limited client for the platform REST API.

Architecture notes:
- One httpx.AsyncClient per RateLimitedClient, created lazily and shared by the
  sleep-mode poller and the message slot sync.
- Headers are rebuilt from the AuthProvider on every attempt, so a session
  swapped in between retries is picked up. A missing session fails with
  AuthError before anything touches the network.
- Retry strategy: only 429 (rate limited) and 503 (service unavailable) are
  retried, with exponential backoff base_delay * 2**attempt and no jitter.
  Everything else is raised to the caller unchanged.
"""

import asyncio
import logging
import urllib.parse
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from sleepchat.config import FRIENDS_PAGE_SIZE, HTTP_TIMEOUT, settings
from sleepchat.core.auth import AuthProvider
from sleepchat.core.errors import RETRYABLE_STATUSES, AuthError, NetworkError, error_for_status

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_platform_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create an httpx client configured for platform API requests."""
    return httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=transport)


def _error_message(resp: httpx.Response) -> str:
    """Pull the human-readable message out of a platform error response."""
    try:
        data = resp.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error

    return resp.text[:300] or f"HTTP {resp.status_code}"


def _decode(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


class RateLimitedClient:
    def __init__(
        self,
        auth: AuthProvider,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        max_retries: int | None = None,
        retry_base_delay_ms: int | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.auth = auth
        self.base_url = (base_url if base_url is not None else settings.api_base_url).rstrip("/")
        self.api_key = settings.api_key if api_key is None else api_key
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self.retry_base_delay_ms = (
            settings.retry_base_delay_ms if retry_base_delay_ms is None else retry_base_delay_ms
        )
        self._http = http_client
        self._sleep = sleep

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = get_platform_client()
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def build_url(self, path: str) -> str:
        """Build the full URL for ``path``, appending the API key when configured."""
        url = f"{self.base_url}{path}"
        if not self.api_key:
            return url
        joiner = "&" if "?" in path else "?"
        return f"{url}{joiner}apiKey={urllib.parse.quote(self.api_key, safe='')}"

    def get_headers(self) -> dict[str, str]:
        headers = self.auth.get_auth_headers()
        if not headers:
            raise AuthError("Not authenticated")
        return dict(headers)

    async def send(self, request_fn: Callable[[], Awaitable[T]], max_retries: int | None = None) -> T:
        """Run ``request_fn``, retrying 429/503 failures with exponential backoff.

        At most ``max_retries`` attempts are made. The error raised on the last
        attempt (or on the first non-retryable failure) is re-raised as-is.
        """
        attempts = max(self.max_retries if max_retries is None else max_retries, 1)
        attempt = 0

        while True:
            try:
                return await request_fn()
            except Exception as e:
                status = getattr(e, "status", None)
                attempt += 1
                if status not in RETRYABLE_STATUSES or attempt >= attempts:
                    raise

                delay_ms = self.retry_base_delay_ms * 2 ** (attempt - 1)
                logger.info(
                    f"HTTP {status} from platform, retrying in {delay_ms}ms "
                    f"(attempt {attempt}/{attempts})"
                )
                await self._sleep(delay_ms / 1000)

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        body: dict | None = None,
        max_retries: int | None = None,
    ) -> Any:
        """Perform one logical API call and return the decoded JSON payload."""

        async def _request() -> Any:
            headers = self.get_headers()
            url = self.build_url(path)
            try:
                resp = await self.http.request(method, url, headers=headers, json=body)
            except httpx.TimeoutException as e:
                raise NetworkError(f"{method} {path} timed out") from e
            except httpx.RequestError as e:
                raise NetworkError(f"{method} {path} failed: {e}") from e

            if resp.status_code >= 400:
                raise error_for_status(resp.status_code, _error_message(resp))
            return _decode(resp)

        return await self.send(_request, max_retries)

    async def paginate(self, path: str, page_size: int = FRIENDS_PAGE_SIZE) -> list:
        """Fetch every page of a list endpoint until a short page comes back."""
        items: list = []
        offset = 0
        joiner = "&" if "?" in path else "?"

        while True:
            page = await self.request_json("GET", f"{path}{joiner}n={page_size}&offset={offset}")
            if not isinstance(page, list) or not page:
                break

            items.extend(page)
            if len(page) < page_size:
                break
            offset += page_size

        return items
