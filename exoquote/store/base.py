"""Persistence interfaces consumed by the sync pipeline and the quote engine."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol

from exoquote.models.contracts import NewQuote, Product, ProductUpsert, Quote

MAX_PAGE_SIZE = 100


class CatalogStore(Protocol):
    async def upsert_product(self, data: ProductUpsert) -> Product: ...

    async def get_product(self, stock_code: str) -> Product | None: ...

    async def search_products(
        self, query: str | None = None, *, limit: int = 50, offset: int = 0
    ) -> list[Product]: ...


class QuoteStore(Protocol):
    async def create_quote(self, data: NewQuote) -> Quote: ...

    async def get_quote(self, quote_id: int) -> Quote | None: ...

    def edit_quote(self, quote_id: int) -> AbstractAsyncContextManager[Quote | None]:
        """Load the aggregate for exclusive modification.

        Yields ``None`` when the quote does not exist. On a clean exit the
        yielded object (header, totals and the full item list) is persisted
        atomically; items without an ``id`` are inserted and receive one. An
        exception inside the block discards every change.
        """
        ...


class Store(CatalogStore, QuoteStore, Protocol):
    async def ping(self) -> bool: ...

    async def close(self) -> None: ...
