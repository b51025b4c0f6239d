"""
Shared HTTP Client Pool Service

One ``httpx.AsyncClient`` reused by every remote price lookup, so that
per-query resolution does not pay for a fresh TLS handshake each time.
The pool only carries connection-level defaults; each lookup passes its own
timeout ceiling.

Usage:
    from mandi_resolver.services.http_pool import get_http_client

    client = get_http_client()
    response = await client.get(url, params=params, timeout=5.0)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# data.gov.in is the only upstream; a handful of connections is plenty
MAX_CONNECTIONS = 20
MAX_KEEPALIVE = 10


class HTTPClientPool:
    """
    Process-wide holder of the shared async client.

    An ``httpx.AsyncClient`` keeps its connections on the event loop that
    opened them, so the client is bound to that loop. A call from another
    loop (e.g. a later ``asyncio.run``) gets a fresh client. The client is
    also recreated if something closed it.
    """

    _instance: Optional[HTTPClientPool] = None
    _client: Optional[httpx.AsyncClient] = None
    _loop: Optional[asyncio.AbstractEventLoop] = None

    def __new__(cls) -> HTTPClientPool:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @staticmethod
    def _open(loop: asyncio.AbstractEventLoop) -> None:
        HTTPClientPool._client = httpx.AsyncClient(
            limits=httpx.Limits(
                max_connections=MAX_CONNECTIONS,
                max_keepalive_connections=MAX_KEEPALIVE,
                keepalive_expiry=30.0,
            ),
            # Upper bound only; resolution lookups pass a tighter ceiling
            timeout=httpx.Timeout(15.0, connect=5.0),
            http2=True,
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )
        HTTPClientPool._loop = loop
        logger.info(f"HTTP client pool opened (max_connections={MAX_CONNECTIONS}, http2=True)")

    @classmethod
    def get_client(cls) -> httpx.AsyncClient:
        """The client for the running event loop; must be called from a coroutine."""
        cls()
        loop = asyncio.get_running_loop()
        if cls._client is None or cls._client.is_closed or cls._loop is not loop:
            if cls._client is not None and cls._loop is not loop:
                logger.debug("HTTP client pool belongs to another event loop; opening a new client")
            cls._open(loop)
        return cls._client

    @classmethod
    async def close(cls) -> None:
        """Close the client if it belongs to the running loop."""
        if cls._client is None or cls._loop is not asyncio.get_running_loop():
            return
        await cls._client.aclose()
        cls._client = None
        cls._loop = None
        logger.info("HTTP client pool closed")


def get_http_client() -> httpx.AsyncClient:
    """Shared client for outbound requests; never create ad-hoc AsyncClients."""
    return HTTPClientPool.get_client()


async def close_http_pool() -> None:
    """Close the shared client (FastAPI shutdown, end of ``resolve_blocking``)."""
    await HTTPClientPool.close()
