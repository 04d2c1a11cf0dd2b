"""Paginated stock-item listing with page-size step-down on gateway timeouts.

A 504 at one page size pauses, then asks for the same position again at the
next smaller size. The smaller size stays in effect for the remaining pages.
When the size changes mid-listing the page number is recomputed from the
position already reached and any overlap is sliced off, so a step-down never
re-reads or skips records.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from exoquote.sync.fetcher import END_OF_PAGES, UpstreamError, UpstreamFetcher

logger = structlog.get_logger()

LIST_PATH = "/stockitem"
DEFAULT_PAGE_SIZES = (50, 25, 10, 5)
STEP_DOWN_PAUSE = 3.0
GATEWAY_TIMEOUT = 504


def page_items(body: Any, *, page: int, page_size: int) -> list[dict]:
    """Extract the item list from a raw array or an ``{"items": [...]}`` wrapper.

    Unrecognized shapes are logged and read as an empty page.
    """
    if isinstance(body, list):
        return body
    if isinstance(body, dict) and isinstance(body.get("items"), list):
        return body["items"]
    logger.warning(
        "unrecognized_page_shape",
        page=page,
        page_size=page_size,
        body_type=type(body).__name__,
        keys=sorted(body)[:10] if isinstance(body, dict) else None,
    )
    return []


def _step_down(page: int, size: int, new_size: int) -> tuple[int, int]:
    """Map ``page`` at ``size`` onto ``new_size``; returns (page, items to skip)."""
    position = (page - 1) * size
    new_page = position // new_size + 1
    return new_page, position - (new_page - 1) * new_size


async def fetch_all_pages(
    fetcher: UpstreamFetcher,
    path: str = LIST_PATH,
    *,
    page_sizes: Sequence[int] = DEFAULT_PAGE_SIZES,
    step_down_pause: float = STEP_DOWN_PAUSE,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[dict]:
    """Collect every brief stock record, starting from page 1.

    Stops on a 404 (end of pages) or an empty page. A 504 that persists down
    to the smallest page size, or any other upstream failure, propagates as
    ``UpstreamError``.
    """
    sizes = sorted({s for s in page_sizes if s > 0}, reverse=True)
    if not sizes:
        raise ValueError("page_sizes must contain a positive size")

    items: list[dict] = []
    size_index = 0
    page = 1
    skip = 0
    while True:
        size = sizes[size_index]
        try:
            body = await fetcher.fetch(
                path,
                params={"page": page, "pagesize": size},
                end_on_404=True,
                fail_fast_statuses=(GATEWAY_TIMEOUT,),
            )
        except UpstreamError as exc:
            if exc.status != GATEWAY_TIMEOUT or size_index == len(sizes) - 1:
                raise
            next_size = sizes[size_index + 1]
            logger.warning(
                "page_size_step_down",
                page=page,
                page_size=size,
                next_page_size=next_size,
                pause_seconds=step_down_pause,
            )
            await sleep(step_down_pause)
            page, extra = _step_down(page, size, next_size)
            skip += extra
            size_index += 1
            continue

        if body is END_OF_PAGES:
            logger.info("pagination_end_of_pages", page=page, page_size=size, total=len(items))
            break
        batch = page_items(body, page=page, page_size=size)
        if not batch:
            logger.info("pagination_empty_page", page=page, page_size=size, total=len(items))
            break
        items.extend(batch[skip:])
        skip = 0
        logger.debug("pagination_page_fetched", page=page, page_size=size, count=len(batch))
        page += 1
    return items
