"""Dict-backed store for local development and tests (USE_DATABASE=false)."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from exoquote.models.contracts import NewQuote, Product, ProductUpsert, Quote
from exoquote.store.base import MAX_PAGE_SIZE


def _now() -> datetime:
    return datetime.now(UTC)


class MemoryStore:
    def __init__(self) -> None:
        self.products: dict[str, Product] = {}
        self.quotes: dict[int, Quote] = {}
        self._product_ids = 0
        self._quote_ids = 0
        self._item_ids = 0
        self._quote_locks: dict[int, asyncio.Lock] = {}

    # --- catalog ---

    async def upsert_product(self, data: ProductUpsert) -> Product:
        existing = self.products.get(data.stock_code)
        values = data.model_dump()
        if existing is not None and existing.model_dump(include=set(values)) == values:
            # unchanged data leaves the row, updated_at included, as it was
            return existing.model_copy(deep=True)
        now = _now()
        if existing is None:
            self._product_ids += 1
            product = Product(**values, id=self._product_ids, created_at=now, updated_at=now)
        else:
            product = Product(
                **values, id=existing.id, created_at=existing.created_at, updated_at=now
            )
        self.products[data.stock_code] = product
        return product.model_copy(deep=True)

    async def get_product(self, stock_code: str) -> Product | None:
        product = self.products.get(stock_code)
        return product.model_copy(deep=True) if product else None

    async def search_products(
        self, query: str | None = None, *, limit: int = 50, offset: int = 0
    ) -> list[Product]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        needle = (query or "").strip().lower()
        matches = []
        for product in sorted(self.products.values(), key=lambda p: p.stock_code):
            haystack = (product.stock_code, product.sku, product.name, product.description)
            if needle and not any(needle in (v or "").lower() for v in haystack):
                continue
            matches.append(product.model_copy(deep=True))
        return matches[max(0, offset) : max(0, offset) + limit]

    # --- quotes ---

    async def create_quote(self, data: NewQuote) -> Quote:
        self._quote_ids += 1
        now = _now()
        quote = Quote(**data.model_dump(), id=self._quote_ids, created_at=now, updated_at=now)
        self.quotes[quote.id] = quote
        return quote.model_copy(deep=True)

    async def get_quote(self, quote_id: int) -> Quote | None:
        quote = self.quotes.get(quote_id)
        return quote.model_copy(deep=True) if quote else None

    @asynccontextmanager
    async def edit_quote(self, quote_id: int) -> AsyncIterator[Quote | None]:
        # quotes are never deleted, so only ids that exist get a lock
        if quote_id not in self.quotes:
            yield None
            return
        async with self._quote_locks.setdefault(quote_id, asyncio.Lock()):
            working = self.quotes[quote_id].model_copy(deep=True)
            yield working
            for item in working.items:
                if item.id is None:
                    self._item_ids += 1
                    item.id = self._item_ids
            working.updated_at = _now()
            self.quotes[quote_id] = working

    # --- lifecycle ---

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None
