import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger("ledgerapi")

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """요청/응답 접근 로그 + 요청 ID 전파"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        target = f"{request.method} {request.url.path}"
        client = request.client.host if request.client else "-"

        logger.info(f"[{request_id}] --> {target} from {client}")
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[{request_id}] !!! {target} from {client}")
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        line = f"[{request_id}] <-- {target} {response.status_code} in {elapsed_ms:.1f}ms"
        if response.status_code >= 500:
            logger.error(line)
        elif response.status_code >= 400:
            logger.warning(line)
        else:
            logger.info(line)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
