"""DineStream FastAPI application.

Menu, carts, orders, payments, drivers and live order tracking served
from one process.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bootstrap import Services, build_services
from shared.errors import DineStreamError
from shared.logging import add_context, clear_context, configure_logging

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain errors into ``{"success": false, "error": ...}`` bodies."""

    @app.exception_handler(DineStreamError)
    async def handle_domain_error(request: Request, exc: DineStreamError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message, details=exc.details)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request", "details": details},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", path=request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
def create_app(services: Services | None = None) -> FastAPI:
    """Build the application.

    Tests pass a prepared ``Services``; otherwise one is built from the
    environment at startup and torn down at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services if services is not None else build_services()
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()

    app = FastAPI(
        title="DineStream API",
        description="Restaurant ordering, payments and delivery tracking",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        clear_context()
        add_context(request_id=request_id, method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers["X-Request-Id"] = request_id
        return response

    from drivers.api.routes import driver_router
    from ordering.api.routes import cart_router, menu_router, order_router, report_router
    from payments.api.routes import payment_router
    from tracking.api.routes import tracking_router

    # /orders/notifications must win over /orders/{order_id}
    app.include_router(tracking_router)
    app.include_router(menu_router)
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(payment_router)
    app.include_router(driver_router)
    app.include_router(report_router)

    @app.get("/health")
    def health(request: Request) -> dict:
        current: Services = request.app.state.services
        return {
            "status": "ok",
            "database": current.database.dialect,
            "broker": current.broker.name,
            "gateway": current.gateway.name,
        }

    return app


configure_logging(log_dir=None)
app = create_app()
