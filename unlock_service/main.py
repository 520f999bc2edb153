"""
Unlock Service: FastAPI Application.

This is the entry point for the application.
All routers and collaborator-failure handlers are registered here.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from unlock_service.config import get_settings
from unlock_service.exceptions import (
    ConfigurationError,
    OnboardingUnavailable,
    PaymentGatewayError,
    PaymentGatewayUnavailable,
    StoreUnavailable,
)
from unlock_service.logging_setup import configure_logging
from unlock_service.api.deps import get_gateway
from unlock_service.api.demand import router as demand_router
from unlock_service.api.health import router as health_router
from unlock_service.api.unlocks import router as unlocks_router
from unlock_service.api.webhooks import router as webhooks_router

logger = logging.getLogger(__name__)

settings = get_settings()

STORE_UNAVAILABLE_DETAIL = (
    "Temporarily unable to finalize your unlock. "
    "Your payment is safe; please retry shortly."
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    try:
        get_gateway()
    except ConfigurationError:
        logger.critical("payment_gateway_misconfigured")
        raise
    logger.info("service_started")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Payment-gated unlocks and investor demand ranking",
    lifespan=lifespan,
)


@app.exception_handler(StoreUnavailable)
@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: Exception):
    return JSONResponse(
        status_code=503,
        content={"detail": STORE_UNAVAILABLE_DETAIL},
        headers={"Retry-After": "5"},
    )


@app.exception_handler(PaymentGatewayUnavailable)
@app.exception_handler(OnboardingUnavailable)
@app.exception_handler(ConfigurationError)
async def collaborator_unavailable_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(PaymentGatewayError)
async def gateway_error_handler(request: Request, exc: PaymentGatewayError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# Register routers
app.include_router(health_router)
app.include_router(unlocks_router)
app.include_router(webhooks_router)
app.include_router(demand_router)


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "unlock_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
