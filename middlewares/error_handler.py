import logging
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from schemas.common import ErrorDetail, ErrorResponse
from utils.errors import PortalError

logger = logging.getLogger(__name__)


def _latency_ms(request: Request) -> int:
    start = getattr(request.state, "started_at", None)
    if start is None:
        return 0
    return int((time.perf_counter() - start) * 1000)


def _error_response(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorDetail(code=code, message=message),
        generated_at=datetime.now(timezone.utc),
        latency_ms=_latency_ms(request),
        trace_id=request.headers.get("X-Request-Id"),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def add_error_handlers(app: FastAPI):
    # ✅ 도메인 에러: 해당 요청만 실패, 세션은 유지
    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
        return _error_response(request, exc.status_code, exc.code, exc.message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error_response(request, 500, "INTERNAL_ERROR", "서버 내부 오류가 발생했습니다.")
