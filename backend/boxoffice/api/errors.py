"""
Maps the purchase error taxonomy onto HTTP responses.

Body shape: {"error": <code>, "detail": <message>} plus "field" for
validation errors, so clients can branch on `error` without parsing text.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from boxoffice.core.errors import (
    GatewayUnavailable,
    InsufficientInventory,
    PurchaseError,
    SelectionValidationError,
)
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)


def error_body(exc: PurchaseError) -> dict:
    body = {"error": exc.code, "detail": exc.message}
    if isinstance(exc, SelectionValidationError):
        body["field"] = exc.field
    elif isinstance(exc, InsufficientInventory):
        body["ticket_type_id"] = exc.ticket_type_id
    return body


async def purchase_error_handler(request: Request, exc: PurchaseError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("purchase_error", code=exc.code, detail=exc.message, exc_info=exc)
    else:
        logger.warning("purchase_rejected", code=exc.code, detail=exc.message)

    headers = None
    if isinstance(exc, GatewayUnavailable):
        headers = {"Retry-After": "5"}
    return JSONResponse(status_code=exc.status_code, content=error_body(exc), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PurchaseError, purchase_error_handler)
