from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from goods_profiles.errors import ApiError, DuplicateKeyConflictError
from goods_profiles.routes._deps import backend_detail, trace_id_from_request
from goods_profiles.schemas import CreateProfileRequest, MaintainProfileRequest, render_profile, success_envelope
from goods_profiles.store import store

router = APIRouter(prefix="/api/v1", tags=["profiles"])


@router.post("/profiles")
def create_profile(payload: CreateProfileRequest, request: Request):
    try:
        profile = store.profiles.create_profile(**payload.model_dump())
    except DuplicateKeyConflictError:
        raise ApiError(
            code="TRADER_PROFILE_DUPLICATE",
            message=f"trader profile already exists: {payload.eori}",
            error_class="business_rule",
            retryable=False,
            http_status=409,
            details=backend_detail("038", "Invalid Request Parameter"),
        ) from None
    return JSONResponse(
        status_code=201,
        content=success_envelope(render_profile(profile), trace_id_from_request(request)),
    )


@router.put("/profiles/{eori}")
def maintain_profile(eori: str, payload: MaintainProfileRequest, request: Request):
    profile = store.profiles.maintain_profile(eori=eori, **payload.model_dump())
    return success_envelope(render_profile(profile), trace_id_from_request(request))


@router.get("/profiles/{eori}")
def get_profile(eori: str, request: Request):
    profile = store.profiles.get_profile(eori=eori)
    return success_envelope(render_profile(profile), trace_id_from_request(request))
