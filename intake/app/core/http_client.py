"""Shared HTTP client for outbound notifier calls.

The client is created in the application lifespan and handed to the
components that need it, so connections to the notification API are
pooled across requests.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from intake.app.core.config import Settings


def build_timeout(config: Settings) -> httpx.Timeout:
    """Granular timeouts from settings."""
    return httpx.Timeout(
        config.httpx_timeout,
        connect=config.httpx_connect_timeout,
        read=config.httpx_read_timeout,
        write=config.httpx_write_timeout,
        pool=config.httpx_pool_timeout,
    )


@asynccontextmanager
async def init_http_client(config: Settings) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create the shared HTTP client and close it on exit.

    Used in the FastAPI lifespan:

        async with init_http_client(settings) as client:
            yield
    """
    limits = httpx.Limits(
        max_connections=config.httpx_max_connections,
        max_keepalive_connections=config.httpx_max_keepalive_connections,
    )
    client = httpx.AsyncClient(timeout=build_timeout(config), limits=limits)
    try:
        yield client
    finally:
        await client.aclose()
