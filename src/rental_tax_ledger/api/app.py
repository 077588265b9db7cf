"""FastAPI application for the rental ledger.

Domain errors become JSON bodies shaped by ``RentalTaxLedgerError.to_dict()``.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from rental_tax_ledger.api.routes import (
    health_router,
    invoice_router,
    property_router,
    report_router,
    tax_router,
    transaction_router,
)
from rental_tax_ledger.config import get_settings
from rental_tax_ledger.container import get_container, reset_container
from rental_tax_ledger.exceptions import RentalTaxLedgerError
from rental_tax_ledger.logging_config import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and open the store on startup; release it on shutdown."""
    settings = get_settings()
    configure_logging(settings)

    container = get_container()
    _ = container.store  # open the database before the first request
    logger.info(
        "api_started",
        version=settings.app_version,
        environment=settings.environment.value,
        sqlite_path=str(settings.sqlite_path),
        classifier_configured=container.gemini_client is not None,
    )

    yield

    await container.aclose()
    reset_container()
    logger.info("api_stopped")


async def log_request_middleware(request: Request, call_next):
    """Tag log lines and the response with a request id (client supplied or new)."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
    bind_context(request_id=request_id, path=request.url.path, method=request.method)

    try:
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.debug("request_completed", status_code=response.status_code)
        return response
    finally:
        clear_context()


async def exception_handler(request: Request, exc: RentalTaxLedgerError) -> JSONResponse:
    """Render a domain error with its own HTTP status."""
    logger.warning(
        "domain_exception",
        error_code=exc.error_code,
        message=exc.message,
        context=exc.context,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("invalid_request_value", message=str(exc))
    return JSONResponse(
        status_code=422,
        content={"error": "VALIDATION_ERROR", "message": str(exc), "context": {}},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Landlord ledger: categorization, receipt reconciliation and property income tax estimates",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.middleware("http")(log_request_middleware)

    app.add_exception_handler(RentalTaxLedgerError, exception_handler)
    app.add_exception_handler(ValueError, value_error_handler)

    app.include_router(health_router)
    app.include_router(property_router)
    app.include_router(transaction_router)
    app.include_router(invoice_router)
    app.include_router(tax_router)
    app.include_router(report_router)

    return app


# Module-level app for `uvicorn rental_tax_ledger.api.app:app`
app = create_app()
