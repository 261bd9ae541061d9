from __future__ import annotations

from fastapi import APIRouter, Request

from goods_profiles.routes._deps import trace_id_from_request
from goods_profiles.schemas import SupportPatchRequest, success_envelope
from goods_profiles.store import store

router = APIRouter(prefix="/api/v1/test-support", tags=["test-support"])


@router.patch("/records")
def support_patch_record(payload: SupportPatchRequest, request: Request):
    fields = payload.metadata_fields()
    store.records.support_patch(eori=payload.eori, record_id=payload.record_id, fields=fields)
    return success_envelope(
        {"recordId": payload.record_id, "patchedFields": sorted(fields)},
        trace_id_from_request(request),
    )
