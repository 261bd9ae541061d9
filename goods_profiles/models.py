from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any

SRC_SYSTEM_NAME = "MDTP"


class Category(IntEnum):
    EXCLUDED = 1
    CONTROLLED = 2
    STANDARD = 3


class Declarable(str, Enum):
    IMMI_READY = "IMMI Ready"
    IMMI_NOT_READY = "Not Ready For IMMI"
    NOT_READY = "Not Ready For Use"


class AccreditationStatus(str, Enum):
    NOT_REQUESTED = "Not Requested"
    REQUESTED = "Requested"
    IN_PROGRESS = "In Progress"
    INFORMATION_REQUESTED = "Information Requested"
    WITHDRAWN = "Withdrawn"
    APPROVED = "Approved"
    REJECTED = "Rejected"


@dataclass(frozen=True)
class Condition:
    type: str | None = None
    condition_id: str | None = None
    condition_description: str | None = None
    condition_trader_text: str | None = None

    def to_document(self) -> dict[str, Any]:
        doc = {
            "type": self.type,
            "conditionId": self.condition_id,
            "conditionDescription": self.condition_description,
            "conditionTraderText": self.condition_trader_text,
        }
        return {k: v for k, v in doc.items() if v is not None}

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Condition":
        return cls(
            type=doc.get("type"),
            condition_id=doc.get("conditionId"),
            condition_description=doc.get("conditionDescription"),
            condition_trader_text=doc.get("conditionTraderText"),
        )


@dataclass(frozen=True)
class Assessment:
    assessment_id: str | None = None
    primary_category: int | None = None
    condition: Condition | None = None

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {}
        if self.assessment_id is not None:
            doc["assessmentId"] = self.assessment_id
        if self.primary_category is not None:
            doc["primaryCategory"] = self.primary_category
        if self.condition is not None:
            doc["condition"] = self.condition.to_document()
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Assessment":
        condition = doc.get("condition")
        return cls(
            assessment_id=doc.get("assessmentId"),
            primary_category=doc.get("primaryCategory"),
            condition=Condition.from_document(condition) if isinstance(condition, dict) else None,
        )


@dataclass(frozen=True)
class GoodsItem:
    eori: str
    actor_id: str
    trader_ref: str
    comcode: str
    goods_description: str
    country_of_origin: str
    comcode_effective_from_date: datetime
    category: Category | None = None
    assessments: tuple[Assessment, ...] = ()
    supplementary_unit: Decimal | None = None
    measurement_unit: str | None = None
    comcode_effective_to_date: datetime | None = None


@dataclass(frozen=True)
class GoodsItemMetadata:
    accreditation_status: AccreditationStatus
    version: int
    active: bool
    locked: bool
    to_review: bool
    created_date_time: datetime
    updated_date_time: datetime
    src_system_name: str = SRC_SYSTEM_NAME
    review_reason: str | None = None
    # Raw mirror of the last computed declarable value; responses recompute it.
    declarable: str | None = None


@dataclass(frozen=True)
class GoodsItemRecord:
    record_id: str
    goods_item: GoodsItem
    metadata: GoodsItemMetadata


@dataclass(frozen=True)
class GoodsItemRecordsPage:
    records: list[GoodsItemRecord] = field(default_factory=list)
    total_count: int = 0


@dataclass(frozen=True)
class TraderProfile:
    eori: str
    actor_id: str
    last_updated: datetime
    ukims_number: str | None = None
    nirms_number: str | None = None
    niphl_number: str | None = None


@dataclass(frozen=True)
class Pagination:
    total_records: int
    current_page: int
    total_pages: int
    next_page: int | None
    previous_page: int | None

    @classmethod
    def for_page(cls, *, total_records: int, page: int, size: int) -> "Pagination":
        total_pages = math.ceil(total_records / size)
        return cls(
            total_records=total_records,
            current_page=page,
            total_pages=total_pages,
            next_page=page + 1 if page < total_pages - 1 else None,
            previous_page=min(page, total_records) - 1 if page > 0 else None,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "totalRecords": self.total_records,
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "nextPage": self.next_page,
            "previousPage": self.previous_page,
        }


# Goods item fields a trader may write through patch/replace.
GOODS_ITEM_FIELDS: tuple[str, ...] = (
    "actor_id",
    "trader_ref",
    "comcode",
    "goods_description",
    "country_of_origin",
    "category",
    "assessments",
    "supplementary_unit",
    "measurement_unit",
    "comcode_effective_from_date",
    "comcode_effective_to_date",
)

REQUIRED_GOODS_ITEM_FIELDS: frozenset[str] = frozenset(
    {
        "actor_id",
        "trader_ref",
        "comcode",
        "goods_description",
        "country_of_origin",
        "comcode_effective_from_date",
    }
)

# Metadata fields the support overlay may set directly.
SUPPORT_METADATA_FIELDS: tuple[str, ...] = (
    "accreditation_status",
    "version",
    "active",
    "locked",
    "to_review",
    "declarable",
    "review_reason",
    "updated_date_time",
)

_STUBBED_ACCREDITATION: dict[str, AccreditationStatus] = {
    "GB777432814901": AccreditationStatus.REQUESTED,
    "GB777432814902": AccreditationStatus.IN_PROGRESS,
    "GB777432814903": AccreditationStatus.INFORMATION_REQUESTED,
    "GB777432814904": AccreditationStatus.WITHDRAWN,
    "GB777432814905": AccreditationStatus.APPROVED,
    "GB777432814906": AccreditationStatus.REJECTED,
}


def stubbed_metadata(eori: str, now: datetime) -> GoodsItemMetadata:
    """Initial metadata for a new record; accreditation is preselected by eori."""
    return GoodsItemMetadata(
        accreditation_status=_STUBBED_ACCREDITATION.get(eori, AccreditationStatus.NOT_REQUESTED),
        version=1,
        active=True,
        locked=False,
        to_review=False,
        created_date_time=now,
        updated_date_time=now,
    )


def assessments_to_documents(assessments: tuple[Assessment, ...]) -> list[dict[str, Any]]:
    return [item.to_document() for item in assessments]


def assessments_from_documents(raw: Any) -> tuple[Assessment, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(Assessment.from_document(item) for item in raw if isinstance(item, dict))
