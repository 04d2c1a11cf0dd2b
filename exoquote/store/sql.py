"""PostgreSQL store on the SQLAlchemy 2.0 async engine over asyncpg."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import func, or_, select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import selectinload

from exoquote.models.contracts import NewQuote, Product, ProductUpsert, Quote, QuoteItem
from exoquote.models.db import ProductRow, QuoteItemRow, QuoteRow
from exoquote.store.base import MAX_PAGE_SIZE

logger = structlog.get_logger()

# Columns written by the item sync from the working aggregate back to rows.
_ITEM_FIELDS = (
    "product_id",
    "stock_code",
    "name",
    "description",
    "sku",
    "origin",
    "length",
    "width",
    "size",
    "price",
    "qty",
    "subtotal",
)
_HEADER_FIELDS = (
    "customer_name",
    "customer_email",
    "notes",
    "currency",
    "status",
    "subtotal",
    "tax",
    "total",
)


def _product(row: ProductRow) -> Product:
    return Product(
        id=row.id,
        stock_code=row.stock_code,
        name=row.name or "Untitled",
        description=row.description,
        sku=row.sku,
        price=row.price,
        origin=row.origin,
        length=row.length,
        width=row.width,
        size=row.size,
        stock_level=row.stock_level,
        last_modified=row.last_modified,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _quote(row: QuoteRow) -> Quote:
    return Quote(
        id=row.id,
        share_token=row.share_token,
        customer_name=row.customer_name,
        customer_email=row.customer_email,
        notes=row.notes,
        currency=row.currency,
        status=row.status,  # type: ignore[arg-type]
        subtotal=row.subtotal,
        tax=row.tax,
        total=row.total,
        items=[
            QuoteItem(id=item.id, **{name: getattr(item, name) for name in _ITEM_FIELDS})
            for item in row.items
        ],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def product_upsert_statement(data: ProductUpsert):
    """INSERT ... ON CONFLICT (stock_code) DO UPDATE, skipped when nothing differs."""
    values = data.model_dump()
    # Insert and update share the exact same attribute set.
    stmt = insert(ProductRow).values(**values)
    columns = [k for k in values if k != "stock_code"]
    changes = {k: stmt.excluded[k] for k in columns}
    changes["updated_at"] = func.now()
    return stmt.on_conflict_do_update(
        index_elements=[ProductRow.stock_code],
        set_=changes,
        where=or_(*(getattr(ProductRow, k).is_distinct_from(stmt.excluded[k]) for k in columns)),
    ).returning(ProductRow)


class SqlStore:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> SqlStore:
        return cls(create_async_engine(database_url, pool_pre_ping=True))

    # --- catalog ---

    async def upsert_product(self, data: ProductUpsert) -> Product:
        stmt = product_upsert_statement(data)
        async with self._sessions() as session, session.begin():
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                # an identical row is not rewritten, so RETURNING yields nothing
                row = await session.scalar(
                    select(ProductRow).where(ProductRow.stock_code == data.stock_code)
                )
            return _product(row)

    async def get_product(self, stock_code: str) -> Product | None:
        async with self._sessions() as session:
            row = await session.scalar(select(ProductRow).where(ProductRow.stock_code == stock_code))
            return _product(row) if row else None

    async def search_products(
        self, query: str | None = None, *, limit: int = 50, offset: int = 0
    ) -> list[Product]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        stmt = select(ProductRow).order_by(ProductRow.stock_code)
        needle = (query or "").strip()
        if needle:
            pattern = f"%{needle}%"
            stmt = stmt.where(
                or_(
                    ProductRow.stock_code.ilike(pattern),
                    ProductRow.sku.ilike(pattern),
                    ProductRow.name.ilike(pattern),
                    ProductRow.description.ilike(pattern),
                )
            )
        stmt = stmt.limit(limit).offset(max(0, offset))
        async with self._sessions() as session:
            rows = (await session.scalars(stmt)).all()
            return [_product(row) for row in rows]

    # --- quotes ---

    async def create_quote(self, data: NewQuote) -> Quote:
        async with self._sessions() as session, session.begin():
            row = QuoteRow(**data.model_dump(), subtotal=0, tax=0, total=0, items=[])
            session.add(row)
            await session.flush()
            await session.refresh(row, attribute_names=["created_at", "updated_at"])
            return _quote(row)

    async def get_quote(self, quote_id: int) -> Quote | None:
        stmt = select(QuoteRow).where(QuoteRow.id == quote_id).options(selectinload(QuoteRow.items))
        async with self._sessions() as session:
            row = await session.scalar(stmt)
            return _quote(row) if row else None

    @asynccontextmanager
    async def edit_quote(self, quote_id: int) -> AsyncIterator[Quote | None]:
        stmt = (
            select(QuoteRow)
            .where(QuoteRow.id == quote_id)
            .options(selectinload(QuoteRow.items))
            .with_for_update()
        )
        async with self._sessions() as session, session.begin():
            row = await session.scalar(stmt)
            if row is None:
                yield None
                return
            working = _quote(row)
            yield working
            inserted = self._apply(row, working)
            await session.flush()
            for item, item_row in inserted:
                item.id = item_row.id

    @staticmethod
    def _apply(row: QuoteRow, working: Quote) -> list[tuple[QuoteItem, QuoteItemRow]]:
        """Copy the working aggregate onto the locked rows.

        Returns the (item, row) pairs that still need a database id.
        """
        for name in _HEADER_FIELDS:
            setattr(row, name, getattr(working, name))
        by_id = {item.id: item for item in row.items}
        kept: list[QuoteItemRow] = []
        inserted: list[tuple[QuoteItem, QuoteItemRow]] = []
        for item in working.items:
            values = {name: getattr(item, name) for name in _ITEM_FIELDS}
            item_row = by_id.get(item.id) if item.id is not None else None
            if item_row is None:
                item_row = QuoteItemRow(**values)
                inserted.append((item, item_row))
            else:
                for name, value in values.items():
                    setattr(item_row, name, value)
            kept.append(item_row)
        # delete-orphan removes rows dropped from the collection
        row.items = kept
        return inserted

    # --- lifecycle ---

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            logger.debug("store_ping_failed", error=str(exc))
            return False

    async def close(self) -> None:
        await self._engine.dispose()
