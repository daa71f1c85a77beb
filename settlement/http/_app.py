"""
FastAPI surface for checkout and promotion lookups.

    app = create_app(store, SettlementConfig.from_env())

Checkout errors render as `{"error": {"kind", "message", "stage", ...}}`:

    input / resource state   → 400
    lost race                → 409
    store failure            → 500
"""

import logging
from typing import Annotated

import fastapi
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from settlement._types import Error, Ok
from settlement.config import SettlementConfig
from settlement.coordinator import Coordinator
from settlement.errors import CheckoutError, ErrorKind, StoreError
from settlement.http._schemas import (
    CheckoutIn,
    CheckoutOut,
    DiscountOut,
    DiscountValidateIn,
    GiftCardBalanceOut,
    GiftCardCodeIn,
    QuoteOut,
    error_body,
)
from settlement.promotions import (
    DiscountRejectionReason,
    GiftCardRejectionReason,
    lookup_gift_card,
    validate_discount,
    validate_gift_card,
)
from settlement.store import Store

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.ORDER_NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.SERVER_ERROR: 500,
}


def status_for(error: CheckoutError) -> int:
    return ERROR_STATUS_CODES.get(error.kind, 400)


def create_app(store: Store, config: SettlementConfig | None = None) -> fastapi.FastAPI:
    coordinator = Coordinator(store, config)
    app = fastapi.FastAPI(title="Settlement")
    app.state.coordinator = coordinator

    # ── error mapping ────────────────────────────────────────────────────────

    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: fastapi.Request, exc: CheckoutError) -> JSONResponse:
        return JSONResponse(status_code=status_for(exc), content={"error": exc.to_dict()})

    @app.exception_handler(StoreError)
    async def store_error_handler(request: fastapi.Request, exc: StoreError) -> JSONResponse:
        logger.error("Store failure on %s", request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content=error_body("Server error"))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: fastapi.Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "kind": "invalid_request",
                    "message": "Malformed request body",
                    "details": [
                        {"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()
                    ],
                }
            },
        )

    # ── checkout ─────────────────────────────────────────────────────────────

    @app.post("/api/checkout", response_model=CheckoutOut, status_code=201)
    async def checkout(
        body: CheckoutIn,
        response: fastapi.Response,
        idempotency_key: Annotated[str | None, fastapi.Header()] = None,
    ) -> CheckoutOut:
        match await coordinator.settle(body.to_domain(idempotency_key)):
            case Ok(settlement):
                if settlement.replayed:
                    response.status_code = 200
                return CheckoutOut.from_domain(settlement)
            case Error(e):
                raise e

    @app.post("/api/checkout/quote", response_model=QuoteOut)
    async def quote(body: CheckoutIn) -> QuoteOut:
        match await coordinator.quote(body.to_domain()):
            case Ok(priced):
                return QuoteOut.from_domain(priced)
            case Error(e):
                raise e

    # ── promotions ───────────────────────────────────────────────────────────

    @app.post("/api/discounts/validate")
    async def discount_validate(body: DiscountValidateIn) -> JSONResponse:
        if not body.code.strip():
            return JSONResponse(status_code=400, content=error_body("Code required"))

        match await validate_discount(store, body.code, body.subtotal):
            case Ok(application) if application is not None:
                return JSONResponse(
                    content={
                        "valid": True,
                        "discount": DiscountOut.from_domain(application).model_dump(mode="json"),
                    }
                )
            case Error(rejection):
                status = 404 if rejection.reason is DiscountRejectionReason.INVALID_CODE else 200
                return JSONResponse(
                    status_code=status, content=error_body(rejection.message, valid=False)
                )
            case _:
                return JSONResponse(status_code=400, content=error_body("Code required"))

    @app.post("/api/gift-cards/validate")
    async def gift_card_validate(body: GiftCardCodeIn) -> JSONResponse:
        if not body.code.strip():
            return JSONResponse(status_code=400, content=error_body("Code required"))

        match await validate_gift_card(store, body.code):
            case Ok(application) if application is not None:
                return JSONResponse(
                    content={"valid": True, "balance": str(application.balance)}
                )
            case Error(rejection):
                status = 404 if rejection.reason is GiftCardRejectionReason.NOT_FOUND else 200
                return JSONResponse(
                    status_code=status, content=error_body(rejection.message, valid=False)
                )
            case _:
                return JSONResponse(status_code=400, content=error_body("Code required"))

    @app.post("/api/gift-cards/balance", response_model=GiftCardBalanceOut)
    async def gift_card_balance(body: GiftCardCodeIn) -> GiftCardBalanceOut | JSONResponse:
        if not body.code.strip():
            return JSONResponse(status_code=400, content=error_body("Code required"))

        match await lookup_gift_card(store, body.code):
            case Ok(card):
                return GiftCardBalanceOut.from_domain(card)
            case Error(rejection):
                return JSONResponse(status_code=404, content=error_body(rejection.message))

    return app


__all__ = ("create_app", "status_for", "ERROR_STATUS_CODES")
