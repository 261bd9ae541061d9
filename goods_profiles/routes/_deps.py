from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from goods_profiles.errors import ApiError, RecordStoreError
from goods_profiles.models import TraderProfile
from goods_profiles.schemas import error_envelope
from goods_profiles.store import store

# kind -> (http status, code, error class, backend error number, message)
_RECORD_ERRORS: dict[str, tuple[int, str, str, str | None, str]] = {
    "not_found": (404, "GOODS_RECORD_NOT_FOUND", "validation", "026", "Invalid Request Parameter"),
    "conflict": (409, "GOODS_RECORD_DUPLICATE", "business_rule", "010", "Invalid Request Parameter"),
    "locked": (409, "GOODS_RECORD_LOCKED", "business_rule", "027", "Invalid Request"),
    "inactive": (409, "GOODS_RECORD_INACTIVE", "business_rule", "031", "Invalid Request"),
    "fatal": (503, "STORE_UNAVAILABLE", "transient", None, "store unavailable"),
}


def backend_detail(number: str, message: str) -> dict[str, Any]:
    return {"detail": [f"error: {number}, message: {message}"]}


def trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return f"req_{uuid.uuid4().hex[:12]}"


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_envelope(
            code=code,
            message=message,
            error_class=error_class,
            retryable=retryable,
            trace_id=trace_id_from_request(request),
            details=details,
        ),
    )


def record_error_response(request: Request, exc: RecordStoreError) -> JSONResponse:
    status_code, code, error_class, number, message = _RECORD_ERRORS.get(exc.kind, _RECORD_ERRORS["fatal"])
    return error_response(
        request,
        code=code,
        message=exc.message if number is not None else message,
        error_class=error_class,
        retryable=exc.kind == "fatal",
        status_code=status_code,
        details=backend_detail(number, message) if number is not None else None,
    )


def require_owner_profile(eori: str) -> TraderProfile:
    profile = store.profiles.find_profile(eori=eori)
    if profile is None:
        raise ApiError(
            code="TRADER_PROFILE_NOT_FOUND",
            message=f"no trader profile for eori: {eori}",
            error_class="validation",
            retryable=False,
            http_status=400,
            details=backend_detail("007", "Invalid Request Parameter"),
        )
    return profile
