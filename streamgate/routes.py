import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .chat_routes import format_validation_errors
from .chat_routes import router as chat_router
from .errors import error_body
from .logging_config import logger
from .settings import settings
from .storage import InMemoryStreamStore, StreamStoreJanitor
from .streaming import StreamLeaseRegistry

_SENSITIVE_HEADER_NAMES = {"authorization", "proxy-authorization", "x-api-key", "cookie"}
REDACTED = "***REDACTED***"


class HealthResponse(BaseModel):
    status: str = "ok"


def sanitize_headers_for_log(headers) -> dict:
    sanitized = {}
    for name, value in headers.items():
        lower_name = name.lower()
        if lower_name in _SENSITIVE_HEADER_NAMES or any(
            token in lower_name for token in ("token", "secret")
        ):
            sanitized[name] = REDACTED
        else:
            sanitized[name] = value
    return sanitized


async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = format_validation_errors(list(exc.errors()))
    message = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": error_body(
                status.HTTP_400_BAD_REQUEST,
                error="bad_request",
                message=message,
                details={"errors": errors},
            )
        },
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    """
    全局异常处理器，统一返回结构化错误响应并打印日志。
    """
    error_id = uuid.uuid4().hex
    logger.exception(
        "Unhandled error %s %s (error_id=%s)",
        request.method,
        request.url.path,
        error_id,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": error_body(
                500,
                error="internal_error",
                message="Internal server error",
                details={"error_id": error_id},
            )
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理：
    - startup: 创建共享 httpx 客户端、会话存储与租约表，启动过期清理任务
    - shutdown: 停止清理任务并关闭 httpx 客户端
    """
    store = InMemoryStreamStore(retention_seconds=settings.stream_retention_seconds)
    janitor = StreamStoreJanitor(
        store, interval_seconds=settings.stream_cleanup_interval_seconds
    )
    app.state.stream_store = store
    app.state.lease_registry = StreamLeaseRegistry()
    app.state.http_client = httpx.AsyncClient(timeout=settings.upstream_timeout)
    janitor.start()
    logger.info(
        "streamgate started (retention=%ss, cleanup every %ss)",
        settings.stream_retention_seconds,
        settings.stream_cleanup_interval_seconds,
    )
    try:
        yield
    finally:
        await janitor.shutdown()
        await app.state.http_client.aclose()


def create_app() -> FastAPI:
    app = FastAPI(title="Streamgate", version="0.1.0", lifespan=lifespan)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(chat_router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Basic request/response logging middleware; credentials are redacted.
        """
        client_host = request.client.host if request.client else "-"
        logger.info(
            "HTTP %s %s from %s, headers=%s",
            request.method,
            request.url.path,
            client_host,
            sanitize_headers_for_log(request.headers),
        )
        response = await call_next(request)
        logger.info(
            "HTTP %s %s -> %s", request.method, request.url.path, response.status_code
        )
        return response

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse()

    return app


__all__ = ["create_app", "lifespan", "sanitize_headers_for_log"]
