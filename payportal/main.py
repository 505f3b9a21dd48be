"""FastAPI entrypoint for the payment approval portal."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from payportal.api.v1.api import api_router
from payportal.core.config import settings, validate_settings
from payportal.db.base import Base
from payportal.db.session import engine
from payportal.services.errors import PaymentPortalError, RateLimited

logger = logging.getLogger(__name__)

app = FastAPI(title="Payment Approval Portal")
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(PaymentPortalError)
async def handle_portal_error(request: Request, exc: PaymentPortalError) -> JSONResponse:
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimited) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


@app.on_event("startup")
def startup() -> None:
    validate_settings(settings)
    if not settings.audit_sign_key:
        logger.warning("[BOOTSTRAP] AUDIT_SIGN_KEY not set; audit records will be unsigned.")
    Base.metadata.create_all(bind=engine)
    logger.info("[BOOTSTRAP] %s started (env=%s)", settings.app_name, settings.app_env)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
