from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from goods_profiles.errors import ApiError, RecordInactiveError
from goods_profiles.models import GoodsItemRecord, Pagination, TraderProfile
from goods_profiles.routes._deps import backend_detail, require_owner_profile, trace_id_from_request
from goods_profiles.schemas import (
    CreateRecordRequest,
    PatchRecordRequest,
    RemoveRecordRequest,
    ReplaceRecordRequest,
    goods_item_fields,
    render_record,
    render_records_page,
    success_envelope,
)
from goods_profiles.store import store

router = APIRouter(prefix="/api/v1", tags=["records"])


def _invalid_parameter(number: str, name: str) -> ApiError:
    return ApiError(
        code="REQ_VALIDATION_FAILED",
        message=f"invalid query parameter: {name}",
        error_class="validation",
        retryable=False,
        http_status=400,
        details=backend_detail(number, "Invalid Request Parameter"),
    )


def _parse_page(raw: str | None) -> int:
    if raw is None:
        return 0
    try:
        page = int(raw)
    except ValueError:
        raise _invalid_parameter("029", "page") from None
    if page < 0:
        raise _invalid_parameter("029", "page")
    return page


def _parse_size(raw: str | None) -> int:
    if raw is None:
        return store.config.default_page_size
    try:
        size = int(raw)
    except ValueError:
        raise _invalid_parameter("030", "size") from None
    if size < 1 or size > store.config.max_page_size:
        raise _invalid_parameter("030", "size")
    return size


def _parse_last_updated(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    try:
        value = datetime.fromisoformat(raw)
    except ValueError:
        raise _invalid_parameter("028", "lastUpdatedDate") from None
    if value.tzinfo is None:
        raise _invalid_parameter("028", "lastUpdatedDate")
    return value


def _render(record: GoodsItemRecord, profile: TraderProfile | None, *, full: bool = True) -> dict[str, object]:
    return render_record(
        record,
        declarable=store.records.declarable_of(record),
        profile=profile,
        full=full,
    )


@router.post("/records")
def create_record(payload: CreateRecordRequest, request: Request):
    profile = require_owner_profile(payload.eori)
    record = store.records.create_record(goods_item=payload.to_goods_item())
    return JSONResponse(
        status_code=201,
        content=success_envelope(_render(record, profile, full=False), trace_id_from_request(request)),
    )


@router.get("/records/{eori}")
def list_records(
    eori: str,
    request: Request,
    page: str | None = None,
    size: str | None = None,
    last_updated_date: str | None = Query(default=None, alias="lastUpdatedDate"),
):
    page_number = _parse_page(page)
    page_size = _parse_size(size)
    updated_after = _parse_last_updated(last_updated_date)
    result = store.records.list_records(
        eori=eori,
        updated_after=updated_after,
        page=page_number,
        size=page_size,
    )
    profile = store.profiles.find_profile(eori=eori)
    data = render_records_page(
        [_render(record, profile) for record in result.records],
        pagination=Pagination.for_page(total_records=result.total_count, page=page_number, size=page_size),
    )
    return success_envelope(data, trace_id_from_request(request))


@router.get("/records/{eori}/{record_id}")
def get_record(eori: str, record_id: str, request: Request):
    record = store.records.get_record(eori=eori, record_id=record_id)
    profile = store.profiles.find_profile(eori=eori)
    return success_envelope(_render(record, profile), trace_id_from_request(request))


@router.patch("/records")
def patch_record(payload: PatchRecordRequest, request: Request):
    profile = require_owner_profile(payload.eori)
    record = store.records.patch_record(
        eori=payload.eori,
        record_id=payload.record_id,
        fields=goods_item_fields(payload),
    )
    return success_envelope(_render(record, profile), trace_id_from_request(request))


@router.put("/records")
def replace_record(payload: ReplaceRecordRequest, request: Request):
    profile = require_owner_profile(payload.eori)
    record = store.records.replace_record(
        eori=payload.eori,
        record_id=payload.record_id,
        fields=goods_item_fields(payload),
    )
    return success_envelope(_render(record, profile), trace_id_from_request(request))


@router.put("/records/remove")
def remove_record(payload: RemoveRecordRequest, request: Request):
    require_owner_profile(payload.eori)
    prior = store.records.deactivate_record(
        eori=payload.eori,
        record_id=payload.record_id,
        actor_id=payload.actor_id,
    )
    if not prior.metadata.active:
        raise RecordInactiveError(
            f"goods item record was already inactive: {prior.record_id}",
            record_id=prior.record_id,
        )
    return success_envelope(
        {"recordId": prior.record_id, "removed": True},
        trace_id_from_request(request),
    )
