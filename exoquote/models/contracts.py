"""Exoquote contract models, shared by the API, the sync pipeline and the stores.

Money is always ``Decimal``; pydantic serializes it as a JSON string so
clients never see a binary float.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

QuoteStatus = Literal["DRAFT", "SENT"]

ZERO = Decimal("0.00")


# === Catalog ===


class ProductUpsert(BaseModel):
    """Attribute set written by the sync on both the insert and update paths."""

    stock_code: str = Field(min_length=1)
    name: str
    description: str | None = None
    sku: str | None = None
    price: Decimal = ZERO
    origin: str | None = None
    length: Decimal | None = None
    width: Decimal | None = None
    size: str | None = None
    stock_level: int = Field(ge=0, default=0)
    last_modified: datetime | None = None


class Product(ProductUpsert):
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProductListResponse(BaseModel):
    items: list[Product] = []
    limit: int
    offset: int


# === Quotes ===


class QuoteItem(BaseModel):
    """Line snapshot of a product at the time it was added to a quote."""

    id: int | None = None
    product_id: int | None = None
    stock_code: str
    name: str
    description: str | None = None
    sku: str | None = None
    origin: str | None = None
    length: Decimal | None = None
    width: Decimal | None = None
    size: str | None = None
    price: Decimal
    qty: int = Field(ge=1)
    subtotal: Decimal = ZERO


class NewQuote(BaseModel):
    share_token: str
    customer_name: str | None = None
    customer_email: str | None = None
    notes: str | None = None
    currency: str
    status: QuoteStatus = "DRAFT"


class Quote(NewQuote):
    id: int
    subtotal: Decimal = ZERO
    tax: Decimal = ZERO
    total: Decimal = ZERO
    items: list[QuoteItem] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CreateQuoteRequest(BaseModel):
    customer_name: str | None = None
    customer_email: str | None = None
    notes: str | None = None
    currency: str | None = None


class UpdateQuoteRequest(BaseModel):
    """Partial header update. Only fields present in the request body apply."""

    customer_name: str | None = None
    customer_email: str | None = None
    notes: str | None = None
    status: QuoteStatus | None = None


class AddItemRequest(BaseModel):
    stock_code: str = Field(min_length=1)
    qty: int = 1


class UpdateItemRequest(BaseModel):
    qty: int = 0


class SendQuoteRequest(BaseModel):
    to_email: str | None = None
    to_name: str | None = None
    message: str | None = None


class SendQuoteResponse(BaseModel):
    ok: bool = True
    sent_to: str
    link: str


# === Sync ===


class SyncResponse(BaseModel):
    status: Literal["completed", "already_running"]
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0
    duration_seconds: float | None = None


# === Errors ===


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool
    detail: str | None = None
