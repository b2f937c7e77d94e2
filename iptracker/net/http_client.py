from __future__ import annotations

from typing import Optional

import httpx

from iptracker.config import Settings, get_settings

_client: Optional[httpx.AsyncClient] = None


def get_http_client(settings: Optional[Settings] = None) -> httpx.AsyncClient:
    """
    Process-wide pooled client. Pool limits and timeout come from ``settings``
    (or the environment) when the client is first created.
    """
    global _client
    if _client is None or _client.is_closed:
        s = settings or get_settings()
        limits = httpx.Limits(
            max_connections=s.HTTPX_MAX_CONNECTIONS,
            max_keepalive_connections=s.HTTPX_MAX_KEEPALIVE,
            keepalive_expiry=s.HTTPX_KEEPALIVE_S,
        )
        _client = httpx.AsyncClient(
            timeout=s.HTTPX_TIMEOUT_S,
            limits=limits,
        )
    return _client


async def close_http_client() -> None:
    global _client
    if _client is not None:
        client, _client = _client, None
        await client.aclose()
