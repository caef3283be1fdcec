"""Upstream forwarding for requests that passed the gateway checks."""

from dataclasses import dataclass

import httpx

from keyguard.config.settings import get_settings

# Hop-by-hop and gateway credential headers are not forwarded upstream
_DROPPED_REQUEST_HEADERS = frozenset({
    "host",
    "content-length",
    "connection",
    "keep-alive",
    "transfer-encoding",
    "upgrade",
    "x-api-key",
    "authorization",
    "x-management-key",
})
_DROPPED_RESPONSE_HEADERS = frozenset({
    "content-length",
    "content-encoding",
    "connection",
    "keep-alive",
    "transfer-encoding",
})

_client: httpx.AsyncClient | None = None


@dataclass
class UpstreamResponse:
    status_code: int
    content: bytes
    headers: dict[str, str]


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        settings = get_settings()
        _client = httpx.AsyncClient(timeout=httpx.Timeout(settings.upstream_timeout, connect=10.0))
    return _client


async def forward_request(
    method: str,
    path: str,
    headers: dict[str, str],
    query: str = "",
    body: bytes = b"",
) -> UpstreamResponse:
    """Forward a request to UPSTREAM_BASE_URL and return the raw response.

    Raises httpx.HTTPError when the upstream cannot be reached.
    """
    settings = get_settings()
    url = f"{settings.upstream_base_url.rstrip('/')}/{path.lstrip('/')}"
    if query:
        url = f"{url}?{query}"

    outgoing = {k: v for k, v in headers.items() if k.lower() not in _DROPPED_REQUEST_HEADERS}

    response = await _get_client().request(method, url, headers=outgoing, content=body)
    return UpstreamResponse(
        status_code=response.status_code,
        content=response.content,
        headers={
            k: v for k, v in response.headers.items()
            if k.lower() not in _DROPPED_RESPONSE_HEADERS
        },
    )


async def close_client() -> None:
    """Close the shared upstream client on shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
