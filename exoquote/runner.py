"""One-shot catalog sync, for cron or manual use.

Run locally with:
    python -m exoquote.runner

Exits non-zero when the listing itself fails (the run is aborted); per-record
failures are counted in the report and do not change the exit code.
"""

from __future__ import annotations

import asyncio
import sys

import structlog

from exoquote.config import settings
from exoquote.logging import configure_logging
from exoquote.store.factory import build_store
from exoquote.sync.orchestrator import CatalogSync

logger = structlog.get_logger()


async def run_sync() -> int:
    """Run one full sync against the configured store and return an exit code."""
    store = build_store(settings)
    logger.info(
        "runner_started",
        base_url=settings.exo_base_url,
        use_database=settings.use_database,
    )
    try:
        report = await CatalogSync(store, settings).run()
    finally:
        await store.close()

    if report is None:
        logger.warning("runner_sync_already_running")
        return 0
    logger.info(
        "runner_finished",
        total=report.total,
        synced=report.synced,
        skipped=report.skipped,
        failed=report.failed,
        duration_seconds=report.duration_seconds,
    )
    return 0


def main() -> None:
    """Entrypoint for `python -m exoquote.runner`."""
    configure_logging()
    try:
        code = asyncio.run(run_sync())
    except KeyboardInterrupt:
        code = 130
    except Exception:
        logger.exception("runner_fatal_error")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
