"""Catalog sync: list every Exo stock item, fetch details, upsert products.

One bad record never aborts the batch: detail-fetch errors and malformed
records are logged and counted. Only a failure of the listing itself ends
the run early, surfacing as ``UpstreamError``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from exoquote.config import Settings
from exoquote.models.contracts import ProductUpsert
from exoquote.store.base import CatalogStore
from exoquote.sync.extraction import extract
from exoquote.sync.fetcher import UpstreamError, UpstreamFetcher, build_upstream_client
from exoquote.sync.pagination import LIST_PATH, fetch_all_pages

logger = structlog.get_logger()

DETAIL_PATH = "/stockitem/{identifier}"
CENTS = Decimal("0.01")

ID_KEYS = ("id", "Id", "ID")
STOCK_CODE_KEYS = ("stockcode", "stockCode", "StockCode", "STOCKCODE", "stock_code")
BARCODE_KEYS = ("barcode", "barcode1", "Barcode", "BARCODE1")
NAME_KEYS = ("description", "Description", "DESCRIPTION", "name")
NOTES_KEYS = ("notes", "extranotes", "longdescription", "Notes", "NOTES")
PRICE_LIST_KEYS = ("saleprices", "salePrices", "sellprices")
PRICE_KEYS = ("sellprice1", "SELLPRICE1", "sellPrice1", "price")
STOCK_KEYS = ("totalinstock", "totalInStock", "stocklevel", "STOCKLEVEL", "freestock")
MODIFIED_KEYS = ("lastupdated", "lastUpdated", "last_updated", "lastModified")


def _first(record: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and not (isinstance(value, str) and not value.strip()):
            return value
    return None


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, (bool, Mapping, list)):
        return None
    return str(value).strip() or None


def resolve_identifier(brief: Mapping[str, Any]) -> str | None:
    """Primary id, then stock code, then barcode."""
    for keys in (ID_KEYS, STOCK_CODE_KEYS, BARCODE_KEYS):
        identifier = _text(_first(brief, keys))
        if identifier is not None:
            return identifier
    return None


def decimal_price(value: Any) -> Decimal | None:
    """Cents-exact price built from the value's text form, never from a binary float."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not price.is_finite():
        return None
    return price.quantize(CENTS, rounding=ROUND_HALF_UP)


def _price(details: Mapping[str, Any]) -> Decimal:
    price_list = _first(details, PRICE_LIST_KEYS)
    if isinstance(price_list, list):
        for entry in price_list:
            candidate = entry.get("price") if isinstance(entry, Mapping) else entry
            price = decimal_price(candidate)
            if price is not None:
                return price
    return decimal_price(_first(details, PRICE_KEYS)) or Decimal("0.00")


def stock_level(value: Any) -> int:
    """Non-negative whole units; missing or invalid reads as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        units = int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return 0
    return max(0, units)


def _timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def build_product(
    identifier: str, brief: Mapping[str, Any], details: Mapping[str, Any]
) -> ProductUpsert:
    attributes = extract(details)
    barcode = _text(_first(details, BARCODE_KEYS)) or _text(_first(brief, BARCODE_KEYS))
    name = _text(_first(details, NAME_KEYS)) or _text(_first(brief, NAME_KEYS))
    return ProductUpsert(
        stock_code=identifier,
        name=name or "Untitled",
        description=_text(_first(details, NOTES_KEYS)),
        sku=barcode or identifier,
        price=_price(details),
        origin=attributes.origin,
        length=attributes.length,
        width=attributes.width,
        size=attributes.size,
        stock_level=stock_level(_first(details, STOCK_KEYS)),
        last_modified=_timestamp(_first(details, MODIFIED_KEYS)),
    )


@dataclass
class SyncReport:
    total: int = 0
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    duration_seconds: float = 0.0


ClientFactory = Callable[[Settings], httpx.AsyncClient]


class CatalogSync:
    """Owns the at-most-one-run guard; the scheduler and the API share one instance."""

    def __init__(
        self,
        store: CatalogStore,
        settings: Settings,
        *,
        client_factory: ClientFactory = build_upstream_client,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self._settings = settings
        self._client_factory = client_factory
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.last_report: SyncReport | None = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self) -> SyncReport | None:
        """Run one full sync, or return None when a run is already in flight."""
        if self._lock.locked():
            logger.info("sync_already_running")
            return None
        async with self._lock:
            report = await self._run()
            self.last_report = report
            return report

    async def _run(self) -> SyncReport:
        report = SyncReport()
        started = time.monotonic()
        logger.info("sync_started")
        async with self._client_factory(self._settings) as client:
            fetcher = UpstreamFetcher(
                client,
                retries=self._settings.fetch_retries,
                base_backoff=self._settings.fetch_backoff_seconds,
                sleep=self._sleep,
            )
            try:
                briefs = await fetch_all_pages(
                    fetcher,
                    LIST_PATH,
                    page_sizes=self._settings.page_sizes,
                    step_down_pause=self._settings.step_down_pause_seconds,
                    sleep=self._sleep,
                )
            except UpstreamError as exc:
                logger.error("sync_fatal", error=str(exc), status=exc.status, attempts=exc.attempts)
                raise

            report.total = len(briefs)
            logger.info("sync_list_fetched", total=report.total)
            for index, brief in enumerate(briefs):
                await self._sync_one(fetcher, brief, index, report)

        report.finished_at = datetime.now(UTC)
        report.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            "sync_complete",
            total=report.total,
            synced=report.synced,
            skipped=report.skipped,
            failed=report.failed,
            duration_seconds=report.duration_seconds,
        )
        return report

    async def _sync_one(
        self,
        fetcher: UpstreamFetcher,
        brief: Any,
        index: int,
        report: SyncReport,
    ) -> None:
        identifier = resolve_identifier(brief) if isinstance(brief, Mapping) else None
        if identifier is None:
            report.skipped += 1
            logger.warning(
                "sync_record_skipped",
                index=index,
                reason="no_identifier",
                keys=sorted(brief)[:10] if isinstance(brief, Mapping) else type(brief).__name__,
            )
            return

        if self._settings.sync_throttle_seconds > 0:
            await self._sleep(self._settings.sync_throttle_seconds)
        try:
            details = await fetcher.fetch(DETAIL_PATH.format(identifier=quote(identifier, safe="")))
            if not isinstance(details, Mapping):
                raise ValueError(f"details is {type(details).__name__}, expected object")
            product = build_product(identifier, brief, details)
            await self.store.upsert_product(product)
        except (UpstreamError, ValueError) as exc:
            report.failed += 1
            logger.warning(
                "sync_record_failed",
                stock_code=identifier,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return
        except Exception:
            report.failed += 1
            logger.exception("sync_record_failed_unexpected", stock_code=identifier)
            return
        report.synced += 1
        logger.debug("sync_record_saved", stock_code=identifier)
