import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

from ledgerapi import containers
from ledgerapi.config import settings
from ledgerapi.core.exception_handlers import (
    handle_base_api_exception,
    handle_http_exception,
    handle_unexpected_error,
    handle_validation_error,
)
from ledgerapi.core.exceptions import BaseAPIException
from ledgerapi.core.logging_middleware import LoggingMiddleware
from ledgerapi.database.session import database
from ledgerapi.logging_config import setup_logging
from ledgerapi.routers import (
    admin_router,
    checkin_router,
    health_router,
    mall_router,
    point_router,
    referral_router,
)

load_dotenv("ledgerapi/.env")
logger = logging.getLogger("ledgerapi")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    database.init()
    logger.info(f"{settings.APP_NAME} started")
    try:
        yield
    finally:
        database.shutdown()
        logger.info(f"{settings.APP_NAME} stopped")


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG, lifespan=lifespan)
    app.container = containers.Container()  # type: ignore

    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router.router)
    for module in (point_router, checkin_router, mall_router, referral_router, admin_router):
        app.include_router(module.router, prefix=settings.API_V1_STR)
    return app


app = create_app()

handler = Mangum(app)
