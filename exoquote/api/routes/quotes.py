"""Quote endpoints, a thin layer over QuoteService.

Domain errors raised by the service (not found, forbidden, invalid input,
mail unavailable) are turned into ErrorResponse JSON by the handler in
``exoquote.main``.
"""

from fastapi import APIRouter, Request

from exoquote.models.contracts import (
    AddItemRequest,
    CreateQuoteRequest,
    ErrorResponse,
    Quote,
    SendQuoteRequest,
    SendQuoteResponse,
    UpdateItemRequest,
    UpdateQuoteRequest,
)
from exoquote.quotes.engine import QuoteService

router = APIRouter(tags=["quotes"])

_NOT_FOUND = {404: {"model": ErrorResponse}}


def _service(request: Request) -> QuoteService:
    return request.app.state.quotes


@router.post("/quotes", status_code=201, response_model=Quote)
async def create_quote(body: CreateQuoteRequest, request: Request) -> Quote:
    """Create a DRAFT quote with a fresh share token."""
    return await _service(request).create_quote(body)


@router.get(
    "/quotes/{quote_id}",
    response_model=Quote,
    responses={403: {"model": ErrorResponse}, **_NOT_FOUND},
)
async def get_quote(quote_id: int, request: Request, token: str | None = None) -> Quote:
    """Fetch a quote. With ?token= the token must match the quote's share token."""
    return await _service(request).get_quote(quote_id, token)


@router.patch(
    "/quotes/{quote_id}",
    response_model=Quote,
    responses={400: {"model": ErrorResponse}, **_NOT_FOUND},
)
async def update_quote(quote_id: int, body: UpdateQuoteRequest, request: Request) -> Quote:
    """Partial header update; omitted fields keep their value."""
    return await _service(request).update_header(quote_id, body)


@router.post("/quotes/{quote_id}/items", response_model=Quote, responses=_NOT_FOUND)
async def add_item(quote_id: int, body: AddItemRequest, request: Request) -> Quote:
    return await _service(request).add_item(quote_id, body.stock_code, body.qty)


@router.patch("/quotes/{quote_id}/items/{item_id}", response_model=Quote, responses=_NOT_FOUND)
async def update_item(
    quote_id: int, item_id: int, body: UpdateItemRequest, request: Request
) -> Quote:
    """Set quantity; qty=0 removes the line."""
    return await _service(request).update_item(quote_id, item_id, body.qty)


@router.delete("/quotes/{quote_id}/items/{item_id}", response_model=Quote, responses=_NOT_FOUND)
async def remove_item(quote_id: int, item_id: int, request: Request) -> Quote:
    return await _service(request).remove_item(quote_id, item_id)


@router.post(
    "/quotes/{quote_id}/send",
    response_model=SendQuoteResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}, **_NOT_FOUND},
)
async def send_quote(quote_id: int, body: SendQuoteRequest, request: Request) -> SendQuoteResponse:
    """E-mail the quote link and summary, then mark the quote SENT."""
    return await _service(request).send_quote(
        quote_id, to_email=body.to_email, to_name=body.to_name, message=body.message
    )
