from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gimerr.core.errors import AppError
from gimerr.core.log_config import setup_logging
from gimerr.core.settings import S
from gimerr.metrics import METRICS_ENABLED, metrics_endpoint, metrics_middleware, set_app_info
from gimerr.routers.checkout import router as checkout_router
from gimerr.routers.game_requests import router as game_requests_router
from gimerr.routers.listings import router as listings_router
from gimerr.routers.misc import router as misc_router
from gimerr.routers.partners import router as partners_router
from gimerr.routers.payouts import router as payouts_router
from gimerr.routers.stripe_webhook import router as stripe_webhook_router
from gimerr.routers.wallet import router as wallet_router

logger = logging.getLogger(__name__)


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message}, status_code=status)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status, exc.message)
    return _error(exc.status, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("%s %s rejected payload: %s", request.method, request.url.path, exc.errors())
    return _error(400, "Payload inválido")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, "Erro interno")


def create_app() -> FastAPI:
    setup_logging(S.log_level)
    app = FastAPI(title="Gimerr Highlights Backend", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if METRICS_ENABLED:
        app.middleware("http")(metrics_middleware)
        set_app_info(app.title, app.version)
        app.get("/metrics")(metrics_endpoint)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(misc_router)
    app.include_router(wallet_router)
    app.include_router(checkout_router)
    app.include_router(stripe_webhook_router)
    app.include_router(payouts_router)
    app.include_router(listings_router)
    app.include_router(game_requests_router)
    app.include_router(partners_router)

    return app

app = create_app()
