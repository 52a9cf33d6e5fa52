import logging
import traceback
from typing import Any, Dict

from fastapi import Request
from fastapi.responses import JSONResponse

from .exceptions import InternalServerError

logger = logging.getLogger("ledgerapi")


def _request_context(request: Request) -> str:
    client = request.client.host if request.client else "-"
    return f"{request.method} {request.url.path} from {client}"


def _error_body(code: str, message: str, details: Dict[str, Any]) -> Dict[str, Any]:
    return {"success": False, "error": {"code": code, "message": message, "details": details}}


async def handle_base_api_exception(request, exc):
    """원장 도메인 예외 -> 표준 에러 봉투"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"[{type(exc).__name__}] {_request_context(request)} -> {exc.status_code} {exc.error_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.detail)  # type: ignore[arg-type]


async def handle_http_exception(request, exc):
    message = f"[HTTPException] {_request_context(request)} -> {exc.status_code}: {exc.detail}"
    if exc.status_code >= 500:
        tb_str = "".join(traceback.format_tb(exc.__traceback__))
        logger.error(f"{message}\n\nStack Trace:\n{tb_str}")
    else:
        logger.warning(message)

    if isinstance(exc.detail, dict) and "error" in exc.detail:  # type: ignore[truthy-bool]
        content = exc.detail  # type: ignore[assignment]
    else:
        content = _error_body("HTTP_ERROR", str(exc.detail), {})
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def handle_validation_error(request, exc):
    logger.warning(f"[RequestValidationError] {_request_context(request)} -> 422: {exc.errors()}")
    content = _error_body("VALIDATION_001", "请求参数无效", {"errors": exc.errors()})
    return JSONResponse(status_code=422, content=content)


async def handle_unexpected_error(request, exc):
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"[Unhandled Error] {_request_context(request)}\n"
        f"{type(exc).__name__}: {exc}\n\n{tb_str}"
    )
    internal = InternalServerError()
    return JSONResponse(status_code=internal.status_code, content=internal.detail)  # type: ignore[arg-type]
