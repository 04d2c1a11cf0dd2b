"""Product catalog endpoints: read-only views over the synced products."""

from fastapi import APIRouter, Query, Request

from exoquote.errors import ProductNotFoundError
from exoquote.models.contracts import ErrorResponse, Product, ProductListResponse
from exoquote.store.base import MAX_PAGE_SIZE

router = APIRouter(tags=["products"])


@router.get("/products", response_model=ProductListResponse)
async def list_products(
    request: Request,
    q: str | None = None,
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
) -> ProductListResponse:
    """Free-text search over stock code, SKU, name and description."""
    items = await request.app.state.store.search_products(q, limit=limit, offset=offset)
    return ProductListResponse(items=items, limit=limit, offset=offset)


@router.get(
    "/products/{stock_code}",
    response_model=Product,
    responses={404: {"model": ErrorResponse}},
)
async def get_product(stock_code: str, request: Request) -> Product:
    product = await request.app.state.store.get_product(stock_code)
    if product is None:
        raise ProductNotFoundError(stock_code)
    return product
