"""Health check endpoint with real connectivity probes.

Each probe has a short timeout. A dependency reporting "disconnected" does
not change the overall status ("ok"); the endpoint always returns 200 so
load balancers keep routing.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog
from fastapi import APIRouter, Request

from exoquote.sync.fetcher import build_upstream_client

logger = structlog.get_logger()

router = APIRouter(tags=["health"])

_CHECK_TIMEOUT = 3.0  # seconds per dependency check


async def _check_database(request: Request) -> str:
    """Round-trip to the configured store."""
    store = request.app.state.store
    try:
        ok = await asyncio.wait_for(store.ping(), timeout=_CHECK_TIMEOUT)
    except Exception as exc:
        logger.debug("health_database_failed", error=str(exc))
        return "disconnected"
    return "connected" if ok else "disconnected"


async def _check_upstream(request: Request) -> str:
    """Any non-5xx answer from the Exo base URL counts as reachable."""
    try:
        async with build_upstream_client(request.app.state.settings) as client:
            response = await client.get("/", timeout=_CHECK_TIMEOUT)
        return "connected" if response.status_code < 500 else "disconnected"
    except httpx.HTTPError as exc:
        logger.debug("health_upstream_failed", error=str(exc))
        return "disconnected"


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Probes storage and the Exo API in parallel. Always 200."""
    database, upstream = await asyncio.gather(
        _check_database(request), _check_upstream(request)
    )
    sync = request.app.state.catalog_sync
    return {
        "status": "ok",
        "version": "0.1.0",
        "environment": request.app.state.settings.environment,
        "database": database,
        "upstream": upstream,
        "sync_running": sync.running,
    }
