"""Quote aggregate: line items, derived totals, status and share-token access.

Totals are never patched incrementally. Every item mutation ends with a full
``recalculate`` of the aggregate inside the same ``store.edit_quote`` block,
so the whole read-modify-write runs under one lock / transaction and two
concurrent edits of the same quote serialize instead of racing.
"""

from __future__ import annotations

import secrets
from decimal import ROUND_HALF_UP, Decimal

import structlog

from exoquote.errors import (
    ForbiddenError,
    InvalidInputError,
    ItemNotFoundError,
    ProductNotFoundError,
    QuoteNotFoundError,
    UnavailableError,
)
from exoquote.models.contracts import (
    CreateQuoteRequest,
    NewQuote,
    Quote,
    QuoteItem,
    SendQuoteResponse,
    UpdateQuoteRequest,
)
from exoquote.quotes.delivery import Mailer, public_link, render_quote_email
from exoquote.store.base import CatalogStore, QuoteStore

logger = structlog.get_logger()

CENTS = Decimal("0.01")
SHARE_TOKEN_BYTES = 16  # 128 bits


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def new_share_token() -> str:
    return secrets.token_hex(SHARE_TOKEN_BYTES)


def recalculate(quote: Quote, tax_rate: Decimal) -> Quote:
    """Re-derive every line subtotal and the quote totals, in place.

    Line subtotals come from the stored unit price and quantity, which also
    corrects any drift left by an earlier write.
    """
    subtotal = Decimal(0)
    for item in quote.items:
        item.subtotal = item.price * item.qty
        subtotal += item.subtotal
    quote.subtotal = round_money(subtotal)
    quote.tax = round_money(tax_rate * quote.subtotal)
    quote.total = round_money(quote.subtotal + quote.tax)
    return quote


class QuoteService:
    def __init__(
        self,
        quotes: QuoteStore,
        catalog: CatalogStore,
        *,
        tax_rate: Decimal = Decimal(0),
        default_currency: str = "AUD",
        mailer: Mailer | None = None,
        base_url: str = "http://localhost:3000",
    ) -> None:
        self._quotes = quotes
        self._catalog = catalog
        self.tax_rate = Decimal(tax_rate)
        self.default_currency = default_currency
        self.mailer = mailer
        self.base_url = base_url

    async def _reload(self, quote_id: int) -> Quote:
        quote = await self._quotes.get_quote(quote_id)
        if quote is None:
            raise QuoteNotFoundError(quote_id)
        return quote

    # --- lifecycle ---

    async def create_quote(self, request: CreateQuoteRequest) -> Quote:
        quote = await self._quotes.create_quote(
            NewQuote(
                share_token=new_share_token(),
                customer_name=request.customer_name or None,
                customer_email=request.customer_email or None,
                notes=request.notes or None,
                currency=request.currency or self.default_currency,
            )
        )
        logger.info("quote_created", quote_id=quote.id, currency=quote.currency)
        return quote

    async def get_quote(self, quote_id: int, token: str | None = None) -> Quote:
        """Unrestricted by id; a supplied token must match the quote's share token."""
        quote = await self._reload(quote_id)
        if token and not secrets.compare_digest(token, quote.share_token):
            logger.info("quote_token_rejected", quote_id=quote_id)
            raise ForbiddenError("Invalid token")
        return quote

    async def update_header(self, quote_id: int, changes: UpdateQuoteRequest) -> Quote:
        fields = changes.model_fields_set
        async with self._quotes.edit_quote(quote_id) as quote:
            if quote is None:
                raise QuoteNotFoundError(quote_id)
            for name in ("customer_name", "customer_email", "notes"):
                if name in fields:
                    setattr(quote, name, getattr(changes, name))
            # SENT is only reached through send_quote
            if "status" in fields and changes.status is not None:
                if changes.status != quote.status:
                    raise InvalidInputError(
                        f"Cannot change quote status from {quote.status} to {changes.status}"
                    )
        logger.info("quote_updated", quote_id=quote_id, fields=sorted(fields))
        return await self._reload(quote_id)

    # --- items ---

    async def add_item(self, quote_id: int, stock_code: str, qty: int | None = 1) -> Quote:
        """Add a product line, or grow the existing line for the same stock code."""
        quantity = max(1, qty or 1)
        product = await self._catalog.get_product(stock_code)
        if product is None:
            raise ProductNotFoundError(stock_code)

        async with self._quotes.edit_quote(quote_id) as quote:
            if quote is None:
                raise QuoteNotFoundError(quote_id)
            existing = next((i for i in quote.items if i.stock_code == stock_code), None)
            if existing is not None:
                # keeps the unit price captured when the line was first added
                existing.qty += quantity
            else:
                quote.items.append(
                    QuoteItem(
                        product_id=product.id,
                        stock_code=product.stock_code,
                        name=product.name or "Untitled",
                        description=product.description,
                        sku=product.sku,
                        origin=product.origin,
                        length=product.length,
                        width=product.width,
                        size=product.size,
                        price=product.price,
                        qty=quantity,
                    )
                )
            recalculate(quote, self.tax_rate)
        logger.info(
            "quote_item_added",
            quote_id=quote_id,
            stock_code=stock_code,
            qty=quantity,
            merged=existing is not None,
        )
        return await self._reload(quote_id)

    async def update_item(self, quote_id: int, item_id: int, qty: int | None) -> Quote:
        """Set a line's quantity; zero (or less) removes the line."""
        quantity = max(0, qty or 0)
        async with self._quotes.edit_quote(quote_id) as quote:
            if quote is None:
                raise QuoteNotFoundError(quote_id)
            item = next((i for i in quote.items if i.id == item_id), None)
            if item is None:
                raise ItemNotFoundError(quote_id, item_id)
            if quantity == 0:
                quote.items.remove(item)
            else:
                item.qty = quantity
            recalculate(quote, self.tax_rate)
        logger.info("quote_item_updated", quote_id=quote_id, item_id=item_id, qty=quantity)
        return await self._reload(quote_id)

    async def remove_item(self, quote_id: int, item_id: int) -> Quote:
        async with self._quotes.edit_quote(quote_id) as quote:
            if quote is None:
                raise QuoteNotFoundError(quote_id)
            quote.items = [i for i in quote.items if i.id != item_id]
            recalculate(quote, self.tax_rate)
        logger.info("quote_item_removed", quote_id=quote_id, item_id=item_id)
        return await self._reload(quote_id)

    # --- delivery ---

    async def send_quote(
        self,
        quote_id: int,
        to_email: str | None = None,
        to_name: str | None = None,
        message: str | None = None,
    ) -> SendQuoteResponse:
        """Mail the quote summary and share link, then mark the quote SENT."""
        quote = await self._reload(quote_id)
        recipient = (to_email or "").strip() or quote.customer_email
        if not recipient:
            raise InvalidInputError("Recipient email required")
        if self.mailer is None:
            raise UnavailableError("SMTP not configured")

        link = public_link(quote, self.base_url)
        email = render_quote_email(
            quote, link, tax_rate=self.tax_rate, message=message, to_name=to_name
        )
        await self.mailer.send(recipient, email.subject, email.html)

        async with self._quotes.edit_quote(quote_id) as editable:
            if editable is None:
                raise QuoteNotFoundError(quote_id)
            editable.status = "SENT"
        logger.info("quote_sent", quote_id=quote_id, recipient_domain=recipient.rpartition("@")[2])
        return SendQuoteResponse(sent_to=recipient, link=link)
