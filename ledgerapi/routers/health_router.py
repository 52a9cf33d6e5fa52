import logging

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ledgerapi.containers import Container
from ledgerapi.database.connection import Database
from ledgerapi.schemas.health import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheckResponse)
@inject
async def health_check(
    database: Database = Depends(Provide[Container.repositories.database]),
):
    """Health check endpoint - DB 연결 확인 포함"""
    try:
        database.query("SELECT 1")
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        body = HealthCheckResponse(status="unhealthy", database="unavailable", error=str(e))
        return JSONResponse(status_code=503, content=body.model_dump())
    return HealthCheckResponse()
