"""
HTTP transport chain for the Azure DevOps REST API.

    AsyncClient (Basic auth, Accept: application/json)
        └── ApiVersionTransport   adds ?api-version=... to every request
              └── CachingTransport    serves repeated GETs from a ResponseCache
                    └── httpx.AsyncHTTPTransport (or a MockTransport in tests)
"""

from __future__ import annotations

import logging

import httpx

from .response_cache import DEFAULT_TTL, ResponseCache

log = logging.getLogger(__name__)

DEVOPS_BASE_URL = "https://dev.azure.com/"
API_VERSION     = "7.2-preview"
REQUEST_TIMEOUT = 30.0

DECODED_HEADERS = ("content-encoding", "content-length", "transfer-encoding")

CachedResponse = tuple[int, list[tuple[str, str]], bytes]


class ApiVersionTransport(httpx.AsyncBaseTransport):
    """Sets the api-version query parameter on every outbound request."""

    def __init__(self, inner: httpx.AsyncBaseTransport, api_version: str = API_VERSION) -> None:
        self._inner       = inner
        self._api_version = api_version

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        request.url = request.url.copy_set_param("api-version", self._api_version)
        return await self._inner.handle_async_request(request)

    async def aclose(self) -> None:
        await self._inner.aclose()


class CachingTransport(httpx.AsyncBaseTransport):
    """
    Serves successful GET responses from a ResponseCache.

    The key is the full request URL plus the Accept header, so a blob
    requested as JSON metadata and as raw bytes are cached separately.
    Only 2xx responses are stored.
    """

    def __init__(self, inner: httpx.AsyncBaseTransport, cache: ResponseCache[CachedResponse]) -> None:
        self._inner = inner
        self._cache = cache

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.method != "GET":
            return await self._inner.handle_async_request(request)

        key    = f"{request.headers.get('accept', '')} {request.url}"
        cached = self._cache.get(key)
        if cached is not None:
            status_code, headers, content = cached
            log.debug("Cache hit: %s", request.url)
            return httpx.Response(status_code, headers=headers, content=content, request=request)

        response = await self._inner.handle_async_request(request)
        try:
            content = await response.aread()
        finally:
            await response.aclose()

        # Content is already decoded, so the encoding headers no longer apply
        headers = [
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in DECODED_HEADERS
        ]
        if 200 <= response.status_code < 300:
            self._cache.set(key, (response.status_code, headers, content))

        return httpx.Response(response.status_code, headers=headers, content=content, request=request)

    async def aclose(self) -> None:
        await self._inner.aclose()


def build_http_client(
    username: str,
    token: str,
    base_url: str = DEVOPS_BASE_URL,
    api_version: str = API_VERSION,
    cache: ResponseCache[CachedResponse] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float = REQUEST_TIMEOUT,
) -> httpx.AsyncClient:
    """
    Build the authenticated client used by AzureDevOpsClient.

    The personal access token goes in as the Basic-auth password;
    Azure DevOps accepts any username, including an empty one.
    """
    inner = transport or httpx.AsyncHTTPTransport()
    cache = cache if cache is not None else ResponseCache(ttl=DEFAULT_TTL)

    return httpx.AsyncClient(
        base_url  = base_url,
        auth      = httpx.BasicAuth(username, token),
        headers   = {"Accept": "application/json"},
        timeout   = timeout,
        transport = ApiVersionTransport(CachingTransport(inner, cache), api_version),
    )
