from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.services.exceptions import (
    ConfigurationError,
    InvalidStateError,
    InvalidTransitionError,
    OrderPersistenceError,
    PaymentFailedError,
    ResourceNotFoundError,
    ServiceError,
)


def _payment_body(exc: PaymentFailedError) -> dict:
    return {
        "detail": exc.detail,
        "order_id": str(exc.order_id) if exc.order_id else None,
        "retryable": exc.retryable,
    }


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ResourceNotFoundError)
    async def handle_not_found(_: Request, exc: ResourceNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(InvalidStateError)
    async def handle_invalid_state(_: Request, exc: InvalidStateError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.detail})

    @app.exception_handler(InvalidTransitionError)
    async def handle_invalid_transition(_: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(ConfigurationError)
    async def handle_configuration(_: Request, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=503, content=_payment_body(exc))

    @app.exception_handler(PaymentFailedError)
    async def handle_payment_failed(_: Request, exc: PaymentFailedError) -> JSONResponse:
        return JSONResponse(status_code=402, content=_payment_body(exc))

    @app.exception_handler(OrderPersistenceError)
    async def handle_order_persistence(_: Request, exc: OrderPersistenceError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={
                "detail": exc.detail,
                "order_id": str(exc.order_id) if exc.order_id else None,
                "retryable": exc.retryable,
            },
        )

    @app.exception_handler(ServiceError)
    async def handle_service_error(_: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.detail})
