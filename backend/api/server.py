# api/server.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - FASTAPI SERVER
# ============================================================================
# App factory, lifespan-owned resources, CORS, timing middleware and error
# mapping. Every error body has the shape {"error": "..."}.
# ============================================================================

import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import SERVICE_NAME, router
from clients.cashfree_client import CashfreeClient
from config import Settings
from database import Database
from logging_config import configure_logging
from services.payment_service import PaymentService, PaymentServiceError
from storage.payment_repository import PaymentRepository, PostgresPaymentRepository
from webhooks.errors import WebhookRejectedError
from webhooks.processor import WebhookProcessor

logger = structlog.get_logger().bind(component="server")

CORS_ALLOW_HEADERS = [
    "Content-Type",
    "Content-Length",
    "Accept-Encoding",
    "X-CSRF-Token",
    "Authorization",
    "Accept",
    "Origin",
    "Cache-Control",
    "X-Requested-With",
]


def _wire(app: FastAPI, settings: Settings, repository: PaymentRepository, gateway: CashfreeClient) -> None:
    app.state.repository = repository
    app.state.gateway = gateway
    app.state.payment_service = PaymentService(repository, gateway, settings)
    app.state.webhook_processor = WebhookProcessor(
        repository,
        settings.webhook_secret,
        timeout=settings.db_operation_timeout,
    )


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[PaymentRepository] = None,
    gateway: Optional[CashfreeClient] = None,
) -> FastAPI:
    """
    Build the service.

    Collaborators that are not injected are created by the lifespan and
    closed on shutdown: the asyncpg pool (DATABASE_URL required) and the
    Cashfree httpx client.
    """
    if settings is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level, json_logs=settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database: Optional[Database] = None
        owned_gateway: Optional[CashfreeClient] = None

        repo = repository
        if repo is None:
            database = Database(settings)
            await database.initialize()
            repo = PostgresPaymentRepository(database)

        client = gateway
        if client is None:
            owned_gateway = client = CashfreeClient(settings)

        _wire(app, settings, repo, client)
        logger.info("service_started",
                    environment=settings.cashfree_environment,
                    base_url=settings.cashfree_base_url)
        try:
            yield
        finally:
            if owned_gateway is not None:
                await owned_gateway.close()
            if database is not None:
                await database.close()
            logger.info("service_stopped")

    app = FastAPI(
        title=SERVICE_NAME,
        description="Cashfree PG integration: orders, refunds, settlements and webhooks",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    if repository is not None and gateway is not None:
        _wire(app, settings, repository, gateway)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["POST", "OPTIONS", "GET", "PUT", "DELETE"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

    # ------------------------------------------------------------------------
    # MIDDLEWARE
    # ------------------------------------------------------------------------

    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        """Add response timing and request id headers."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        duration = (time.perf_counter() - start) * 1000
        response.headers["X-Response-Time-Ms"] = f"{duration:.2f}"
        response.headers["X-Request-ID"] = request_id
        return response

    # ------------------------------------------------------------------------
    # ERROR MAPPING
    # ------------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(WebhookRejectedError)
    async def webhook_rejected_handler(request: Request, exc: WebhookRejectedError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(PaymentServiceError)
    async def payment_error_handler(request: Request, exc: PaymentServiceError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    app.include_router(router)
    return app


# ============================================================================
# MAIN
# ============================================================================

def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level, json_logs=settings.log_json)
    logger.info("server_starting", host=settings.host, port=settings.port)
    uvicorn.run(
        "api.server:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
