from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from goods_profiles.errors import ApiError, RecordStoreError, TraderProfileNotFoundError
from goods_profiles.routes import profiles, records, support
from goods_profiles.routes._deps import (
    backend_detail,
    error_response,
    record_error_response,
    request_id_from_request,
    trace_id_from_request,
)
from goods_profiles.schemas import success_envelope
from goods_profiles.store import store

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Goods Item Records API", version="0.1.0")

    @app.middleware("http")
    async def add_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        request.state.request_id = request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")
        response = await call_next(request)
        response.headers["x-trace-id"] = trace_id_from_request(request)
        response.headers["x-request-id"] = request_id_from_request(request)
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        return error_response(
            request,
            code=exc.code,
            message=exc.message,
            error_class=exc.error_class,
            retryable=exc.retryable,
            status_code=exc.http_status,
            details=exc.details,
        )

    @app.exception_handler(RecordStoreError)
    async def handle_record_store_error(request: Request, exc: RecordStoreError):
        return record_error_response(request, exc)

    @app.exception_handler(TraderProfileNotFoundError)
    async def handle_profile_not_found(request: Request, exc: TraderProfileNotFoundError):
        return error_response(
            request,
            code="TRADER_PROFILE_NOT_FOUND",
            message=str(exc),
            error_class="validation",
            retryable=False,
            status_code=404,
            details=backend_detail("007", "Invalid Request Parameter"),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()})
        logger.info("request_validation_failed path=%s fields=%s", request.url.path, ",".join(fields))
        return error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message="invalid payload",
            error_class="validation",
            retryable=False,
            status_code=400,
            details={"fields": fields},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(
                request,
                code="REQ_NOT_FOUND",
                message="resource not found",
                error_class="validation",
                retryable=False,
                status_code=404,
            )
        return error_response(
            request,
            code="REQ_HTTP_ERROR",
            message=str(exc.detail),
            error_class="validation",
            retryable=False,
            status_code=exc.status_code,
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok", "backend": store.backend}, trace_id_from_request(request))

    app.include_router(records.router)
    app.include_router(profiles.router)
    app.include_router(support.router)
    return app


app = create_app()
