"""Domain error taxonomy.

Routes never build error responses for these by hand: the handler in
``exoquote.main`` turns any ``DomainError`` into the shared ``ErrorResponse``
shape using the class attributes below.
"""

from __future__ import annotations


class DomainError(Exception):
    status_code = 400
    code = "domain_error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class QuoteNotFoundError(NotFoundError):
    code = "quote_not_found"

    def __init__(self, quote_id: int) -> None:
        super().__init__(f"Quote {quote_id} not found")
        self.quote_id = quote_id


class ItemNotFoundError(NotFoundError):
    code = "item_not_found"

    def __init__(self, quote_id: int, item_id: int) -> None:
        super().__init__(f"Item {item_id} not found on quote {quote_id}")
        self.quote_id = quote_id
        self.item_id = item_id


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"

    def __init__(self, stock_code: str) -> None:
        super().__init__(f"Product {stock_code!r} not found")
        self.stock_code = stock_code


class ForbiddenError(DomainError):
    status_code = 403
    code = "forbidden"


class InvalidInputError(DomainError):
    status_code = 400
    code = "invalid_input"


class UnavailableError(DomainError):
    status_code = 503
    code = "unavailable"


class MailDeliveryError(UnavailableError):
    code = "mail_delivery_failed"
    retryable = True
