import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .exceptions import InsufficientCreditsError, InternalServerError, StorageError

logger = logging.getLogger("creditapi")

# 저장소 오류 시 클라이언트 재시도 권장 간격 (초)
STORAGE_RETRY_AFTER_SECONDS = "1"


def _describe(request: Request) -> str:
    client = request.client.host if request.client else "-"
    return f"{request.method} {request.url.path} from {client}"


def _error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details or {}},
    }


async def handle_base_api_exception(request, exc):
    """원장 예외 -> 구조화된 에러 응답

    잔액 부족은 정상적인 업무 결과이므로 INFO로만 남깁니다.
    """
    message = f"[{exc.error_code}] {_describe(request)} -> {exc.status_code}: {exc.message}"
    headers = dict(exc.headers or {})

    if isinstance(exc, InsufficientCreditsError):
        logger.info(message)
    elif isinstance(exc, StorageError):
        logger.error(message)
        headers.setdefault("Retry-After", STORAGE_RETRY_AFTER_SECONDS)
    elif exc.status_code >= 500:
        logger.error(message)
    else:
        logger.warning(message)

    return JSONResponse(
        status_code=exc.status_code, content=exc.detail, headers=headers or None
    )


async def handle_http_exception(request, exc):
    message = f"[HTTPException] {_describe(request)} -> {exc.status_code}: {exc.detail}"
    if exc.status_code >= 500:
        logger.error(f"{message}\n{''.join(traceback.format_tb(exc.__traceback__))}")
    else:
        logger.warning(message)

    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = exc.detail
    else:
        content = _error_body("HTTP_ERROR", str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None)
    )


async def handle_validation_error(request, exc):
    errors = jsonable_encoder(exc.errors())
    logger.warning(f"[VALIDATION_001] {_describe(request)} -> 422: {errors}")
    return JSONResponse(
        status_code=422,
        content=_error_body("VALIDATION_001", "Validation failed", {"errors": errors}),
    )


async def handle_unexpected_error(request, exc):
    logger.error(
        f"[Unhandled Error] {_describe(request)} {type(exc).__name__}: {str(exc)}\n"
        + "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    internal = InternalServerError()
    return JSONResponse(status_code=internal.status_code, content=internal.detail)
