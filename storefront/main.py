from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.api.routes_orders import router as orders_router
from storefront.core.config import get_settings
from storefront.core.errors import StorefrontError, ValidationFailed
from storefront.core.logging import configure_logging
from storefront.persistence.pg import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("storefront settlement service ready: env=%s", settings.env)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(_: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.warning("request failed: kind=%s detail=%s", exc.kind, exc.detail)
    else:
        logger.info("request rejected: kind=%s detail=%s", exc.kind, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(_: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    error = ValidationFailed(problems or "invalid request")
    logger.info("request rejected: kind=%s detail=%s", error.kind, error.detail)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(orders_router)
