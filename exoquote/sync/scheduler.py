"""Hourly catalog sync inside the API process (cron equivalent: ``0 * * * *``)."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime, timedelta

import structlog

from exoquote.sync.fetcher import UpstreamError
from exoquote.sync.orchestrator import CatalogSync

logger = structlog.get_logger()


def seconds_until_next_hour(now: datetime) -> float:
    """Seconds from ``now`` to the next top of the hour (never zero)."""
    next_run = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return (next_run - now).total_seconds()


class SyncScheduler:
    def __init__(self, sync: CatalogSync) -> None:
        self._sync = sync
        self._task: asyncio.Task[None] | None = None

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.started:
            return
        self._task = asyncio.create_task(self._loop(), name="catalog-sync-scheduler")
        logger.info("sync_scheduler_started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("sync_scheduler_stopped")

    async def run_once(self) -> None:
        """One scheduled tick. Failures are logged here and never escape."""
        try:
            report = await self._sync.run()
        except UpstreamError as exc:
            logger.error("scheduled_sync_failed", error=str(exc), status=exc.status)
            return
        except Exception:
            logger.exception("scheduled_sync_crashed")
            return
        if report is None:
            logger.info("scheduled_sync_skipped", reason="already_running")

    async def _loop(self) -> None:
        while True:
            delay = seconds_until_next_hour(datetime.now(UTC))
            logger.debug("sync_scheduler_sleeping", seconds=round(delay, 1))
            await asyncio.sleep(delay)
            await self.run_once()
