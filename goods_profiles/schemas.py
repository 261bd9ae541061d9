from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from goods_profiles.models import (
    AccreditationStatus,
    Assessment,
    Category,
    Condition,
    Declarable,
    GoodsItem,
    GoodsItemRecord,
    GOODS_ITEM_FIELDS,
    Pagination,
    TraderProfile,
)


def _eori() -> Any:
    return Field(min_length=14, max_length=17, pattern=r"^[A-Z]{2}[0-9A-Z]+$")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConditionPayload(CamelModel):
    type: str | None = None
    condition_id: str | None = None
    condition_description: str | None = None
    condition_trader_text: str | None = None

    def to_model(self) -> Condition:
        return Condition(**self.model_dump())


class AssessmentPayload(CamelModel):
    assessment_id: str | None = None
    primary_category: int | None = None
    condition: ConditionPayload | None = None

    def to_model(self) -> Assessment:
        return Assessment(
            assessment_id=self.assessment_id,
            primary_category=self.primary_category,
            condition=self.condition.to_model() if self.condition is not None else None,
        )


class CreateRecordRequest(CamelModel):
    eori: str = _eori()
    actor_id: str = _eori()
    trader_ref: str = Field(min_length=1, max_length=512)
    comcode: str = Field(min_length=1, max_length=10, pattern=r"^[0-9]+$")
    goods_description: str = Field(min_length=1, max_length=512)
    country_of_origin: str = Field(min_length=1, max_length=2)
    category: Category | None = None
    assessments: list[AssessmentPayload] | None = None
    supplementary_unit: Decimal | None = None
    measurement_unit: str | None = Field(default=None, max_length=255)
    comcode_effective_from_date: AwareDatetime
    comcode_effective_to_date: AwareDatetime | None = None

    def to_goods_item(self) -> GoodsItem:
        return GoodsItem(eori=self.eori, **goods_item_fields(self))


class PatchRecordRequest(CamelModel):
    eori: str = _eori()
    record_id: str = Field(min_length=1)
    actor_id: str = _eori()
    trader_ref: str | None = Field(default=None, min_length=1, max_length=512)
    comcode: str | None = Field(default=None, min_length=1, max_length=10, pattern=r"^[0-9]+$")
    goods_description: str | None = Field(default=None, min_length=1, max_length=512)
    country_of_origin: str | None = Field(default=None, min_length=1, max_length=2)
    category: Category | None = None
    assessments: list[AssessmentPayload] | None = None
    supplementary_unit: Decimal | None = None
    measurement_unit: str | None = Field(default=None, max_length=255)
    comcode_effective_from_date: AwareDatetime | None = None
    comcode_effective_to_date: AwareDatetime | None = None


class ReplaceRecordRequest(CamelModel):
    eori: str = _eori()
    record_id: str = Field(min_length=1)
    actor_id: str = _eori()
    trader_ref: str = Field(min_length=1, max_length=512)
    comcode: str = Field(min_length=1, max_length=10, pattern=r"^[0-9]+$")
    goods_description: str = Field(min_length=1, max_length=512)
    country_of_origin: str = Field(min_length=1, max_length=2)
    category: Category | None = None
    assessments: list[AssessmentPayload] | None = None
    supplementary_unit: Decimal | None = None
    measurement_unit: str | None = Field(default=None, max_length=255)
    comcode_effective_from_date: AwareDatetime
    comcode_effective_to_date: AwareDatetime | None = None


class RemoveRecordRequest(CamelModel):
    eori: str = _eori()
    record_id: str = Field(min_length=1)
    actor_id: str = _eori()


class SupportPatchRequest(CamelModel):
    eori: str = _eori()
    record_id: str = Field(min_length=1)
    accreditation_status: AccreditationStatus | None = None
    version: int | None = Field(default=None, ge=1)
    active: bool | None = None
    locked: bool | None = None
    to_review: bool | None = None
    declarable: Declarable | None = None
    review_reason: str | None = None
    updated_date_time: AwareDatetime | None = None

    def metadata_fields(self) -> dict[str, Any]:
        fields = self.model_dump(exclude={"eori", "record_id"}, exclude_none=True)
        if "declarable" in fields:
            fields["declarable"] = fields["declarable"].value
        return fields


class CreateProfileRequest(CamelModel):
    eori: str = _eori()
    actor_id: str = _eori()
    ukims_number: str | None = Field(default=None, min_length=1, max_length=32)
    nirms_number: str | None = Field(default=None, min_length=1, max_length=32)
    niphl_number: str | None = Field(default=None, min_length=1, max_length=32)


class MaintainProfileRequest(CamelModel):
    actor_id: str = _eori()
    ukims_number: str | None = Field(default=None, min_length=1, max_length=32)
    nirms_number: str | None = Field(default=None, min_length=1, max_length=32)
    niphl_number: str | None = Field(default=None, min_length=1, max_length=32)


def goods_item_fields(payload: BaseModel) -> dict[str, Any]:
    """Goods item fields the payload actually carries, converted to model values."""
    fields: dict[str, Any] = {}
    for name in GOODS_ITEM_FIELDS:
        value = getattr(payload, name, None)
        if value is None:
            continue
        if name == "assessments":
            value = tuple(item.to_model() for item in value)
        fields[name] = value
    return fields


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _number(value: Decimal | None) -> float | int | None:
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def render_record(
    record: GoodsItemRecord,
    *,
    declarable: Declarable,
    profile: TraderProfile | None = None,
    full: bool = True,
) -> dict[str, Any]:
    goods_item = record.goods_item
    metadata = record.metadata
    doc: dict[str, Any] = {
        "recordId": record.record_id,
        "eori": goods_item.eori,
        "actorId": goods_item.actor_id,
        "traderRef": goods_item.trader_ref,
        "comcode": goods_item.comcode,
        "accreditationStatus": metadata.accreditation_status.value,
        "goodsDescription": goods_item.goods_description,
        "countryOfOrigin": goods_item.country_of_origin,
        "category": int(goods_item.category) if goods_item.category is not None else None,
        "assessments": [item.to_document() for item in goods_item.assessments],
        "supplementaryUnit": _number(goods_item.supplementary_unit),
        "measurementUnit": goods_item.measurement_unit,
        "comcodeEffectiveFromDate": _iso(goods_item.comcode_effective_from_date),
        "comcodeEffectiveToDate": _iso(goods_item.comcode_effective_to_date),
        "version": metadata.version,
        "active": metadata.active,
        "toReview": metadata.to_review,
        "reviewReason": metadata.review_reason,
        "declarable": declarable.value,
        "ukimsNumber": profile.ukims_number if profile is not None else None,
        "nirmsNumber": profile.nirms_number if profile is not None else None,
        "niphlNumber": profile.niphl_number if profile is not None else None,
    }
    if full:
        doc["locked"] = metadata.locked
        doc["srcSystemName"] = metadata.src_system_name
    doc["createdDateTime"] = _iso(metadata.created_date_time)
    doc["updatedDateTime"] = _iso(metadata.updated_date_time)
    return {k: v for k, v in doc.items() if v is not None}


def render_records_page(
    records: list[dict[str, Any]],
    *,
    pagination: Pagination,
) -> dict[str, Any]:
    return {
        "goodsItemRecords": records,
        "pagination": pagination.to_document(),
    }


def render_profile(profile: TraderProfile) -> dict[str, Any]:
    doc = {
        "eori": profile.eori,
        "actorId": profile.actor_id,
        "ukimsNumber": profile.ukims_number,
        "nirmsNumber": profile.nirms_number,
        "niphlNumber": profile.niphl_number,
        "lastUpdated": _iso(profile.last_updated),
    }
    return {k: v for k, v in doc.items() if v is not None}


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
