"""FastAPI application for the billing core."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from snt_billing import __version__
from snt_billing.api.billing import router as billing_router
from snt_billing.api.errors import register_exception_handlers
from snt_billing.api.payments import router as payments_router
from snt_billing.config import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.api_title} starting (env={settings.app_env})")
    yield
    logger.info(f"{settings.api_title} stopped")


app = FastAPI(
    title=settings.api_title,
    description="Billing ledger and payment reconciliation for SNT communities",
    version=settings.api_version or __version__,
    lifespan=lifespan,
)

register_exception_handlers(app)

app.include_router(billing_router)
app.include_router(payments_router)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {"status": "ok"}


__all__ = ["app"]
