from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from goods_profiles.errors import (
    DuplicateKeyConflictError,
    RecordInactiveError,
    RecordLockedError,
    RecordNotFoundError,
    StoreUnavailableError,
)
from goods_profiles.models import Assessment, Category, Declarable, GoodsItem
from goods_profiles.services import GoodsItemRecordService

OWNER = "GB123456789001"
OTHER = "GB123456789002"


def _goods_item(trader_ref: str = "BAN001", *, eori: str = OWNER, **overrides) -> GoodsItem:
    values = {
        "eori": eori,
        "actor_id": eori,
        "trader_ref": trader_ref,
        "comcode": "10410100",
        "goods_description": "Organic bananas",
        "country_of_origin": "EC",
        "category": Category.STANDARD,
        "assessments": (Assessment(assessment_id="a1", primary_category=1),),
        "supplementary_unit": Decimal("500"),
        "measurement_unit": "kg",
        "comcode_effective_from_date": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "comcode_effective_to_date": None,
    }
    values.update(overrides)
    return GoodsItem(**values)


def test_create_record_starts_at_version_one_with_unique_ids(record_service):
    first = record_service.create_record(goods_item=_goods_item("BAN001"))
    second = record_service.create_record(goods_item=_goods_item("BAN002"))

    assert first.metadata.version == 1
    assert second.metadata.version == 1
    assert first.record_id != second.record_id
    assert first.metadata.created_date_time == first.metadata.updated_date_time
    assert first.metadata.declarable == Declarable.IMMI_READY.value


def test_duplicate_trader_ref_for_same_owner_conflicts(record_service):
    first = record_service.create_record(goods_item=_goods_item("BAN001"))

    with pytest.raises(DuplicateKeyConflictError):
        record_service.create_record(goods_item=_goods_item("BAN001", goods_description="changed"))

    stored = record_service.get_record(eori=OWNER, record_id=first.record_id)
    assert stored == first


def test_same_trader_ref_for_different_owners_is_allowed(record_service):
    record_service.create_record(goods_item=_goods_item("BAN001"))
    other = record_service.create_record(goods_item=_goods_item("BAN001", eori=OTHER))
    assert other.goods_item.eori == OTHER


def test_patch_only_touches_supplied_fields(record_service):
    created = record_service.create_record(goods_item=_goods_item())

    patched = record_service.patch_record(
        eori=OWNER,
        record_id=created.record_id,
        fields={"goods_description": "Fair trade bananas", "actor_id": OTHER},
    )

    assert patched.metadata.version == created.metadata.version + 1
    assert patched.metadata.updated_date_time > created.metadata.updated_date_time
    assert patched.goods_item.goods_description == "Fair trade bananas"
    assert patched.goods_item.actor_id == OTHER
    assert patched.goods_item.comcode == created.goods_item.comcode
    assert patched.goods_item.assessments == created.goods_item.assessments
    assert patched.goods_item.supplementary_unit == created.goods_item.supplementary_unit


def test_empty_patch_only_bumps_version_and_time(record_service):
    created = record_service.create_record(goods_item=_goods_item())

    patched = record_service.patch_record(eori=OWNER, record_id=created.record_id, fields={})

    assert patched.goods_item == created.goods_item
    assert patched.metadata.version == 2
    assert patched.metadata.updated_date_time > created.metadata.updated_date_time


def test_updated_date_time_strictly_increases_when_clock_goes_backwards(record_service, clock):
    created = record_service.create_record(goods_item=_goods_item())
    clock.advance(timedelta(seconds=-30))

    patched = record_service.patch_record(eori=OWNER, record_id=created.record_id, fields={})

    assert patched.metadata.updated_date_time > created.metadata.updated_date_time


def test_patch_recomputes_declarable_mirror(record_service, record_repository):
    created = record_service.create_record(goods_item=_goods_item())

    patched = record_service.patch_record(
        eori=OWNER,
        record_id=created.record_id,
        fields={"category": Category.EXCLUDED},
    )

    assert patched.metadata.declarable == Declarable.IMMI_NOT_READY.value
    stored = record_repository.get(eori=OWNER, record_id=created.record_id)
    assert stored.metadata.declarable == Declarable.IMMI_NOT_READY.value


def test_replace_clears_omitted_optional_fields(record_service):
    created = record_service.create_record(goods_item=_goods_item())

    replaced = record_service.replace_record(
        eori=OWNER,
        record_id=created.record_id,
        fields={
            "actor_id": OWNER,
            "trader_ref": "BAN001",
            "comcode": "104101",
            "goods_description": "Bananas",
            "country_of_origin": "CR",
            "comcode_effective_from_date": datetime(2024, 2, 1, tzinfo=timezone.utc),
        },
    )

    assert replaced.metadata.version == created.metadata.version + 1
    assert replaced.metadata.updated_date_time > created.metadata.updated_date_time
    assert replaced.goods_item.comcode == "104101"
    assert replaced.goods_item.category is None
    assert replaced.goods_item.assessments == ()
    assert replaced.goods_item.supplementary_unit is None
    assert replaced.goods_item.measurement_unit is None
    assert replaced.metadata.declarable == Declarable.NOT_READY.value


def test_replace_requires_mandatory_fields(record_service):
    created = record_service.create_record(goods_item=_goods_item())

    with pytest.raises(ValueError, match="missing required goods item fields"):
        record_service.replace_record(eori=OWNER, record_id=created.record_id, fields={"actor_id": OWNER})


def test_patch_rejects_unknown_fields(record_service):
    created = record_service.create_record(goods_item=_goods_item())

    with pytest.raises(ValueError, match="unsupported goods item fields"):
        record_service.patch_record(eori=OWNER, record_id=created.record_id, fields={"version": 9})


@pytest.mark.parametrize("operation", ["patch_record", "replace_record"])
def test_locked_record_rejects_updates_and_stays_unchanged(record_service, operation):
    created = record_service.create_record(goods_item=_goods_item())
    record_service.support_patch(eori=OWNER, record_id=created.record_id, fields={"locked": True})
    before = record_service.get_record(eori=OWNER, record_id=created.record_id)

    fields = {
        "actor_id": OWNER,
        "trader_ref": "BAN009",
        "comcode": "104101",
        "goods_description": "changed",
        "country_of_origin": "EC",
        "comcode_effective_from_date": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    with pytest.raises(RecordLockedError):
        getattr(record_service, operation)(eori=OWNER, record_id=created.record_id, fields=fields)

    assert record_service.get_record(eori=OWNER, record_id=created.record_id) == before


@pytest.mark.parametrize("operation", ["patch_record", "replace_record"])
def test_inactive_record_rejects_updates_and_stays_unchanged(record_service, operation):
    created = record_service.create_record(goods_item=_goods_item())
    record_service.deactivate_record(eori=OWNER, record_id=created.record_id, actor_id=OWNER)
    before = record_service.get_record(eori=OWNER, record_id=created.record_id)

    fields = {
        "actor_id": OWNER,
        "trader_ref": "BAN009",
        "comcode": "104101",
        "goods_description": "changed",
        "country_of_origin": "EC",
        "comcode_effective_from_date": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    with pytest.raises(RecordInactiveError):
        getattr(record_service, operation)(eori=OWNER, record_id=created.record_id, fields=fields)

    assert record_service.get_record(eori=OWNER, record_id=created.record_id) == before


def test_locked_takes_precedence_over_inactive(record_service):
    created = record_service.create_record(goods_item=_goods_item())
    record_service.support_patch(
        eori=OWNER,
        record_id=created.record_id,
        fields={"locked": True, "active": False},
    )

    with pytest.raises(RecordLockedError):
        record_service.patch_record(eori=OWNER, record_id=created.record_id, fields={})


def test_patch_unknown_record_is_not_found(record_service):
    with pytest.raises(RecordNotFoundError):
        record_service.patch_record(eori=OWNER, record_id="missing", fields={"comcode": "104101"})


def test_patch_of_another_owners_locked_record_is_not_found(record_service):
    created = record_service.create_record(goods_item=_goods_item(eori=OTHER))
    record_service.support_patch(eori=OTHER, record_id=created.record_id, fields={"locked": True})

    with pytest.raises(RecordNotFoundError):
        record_service.patch_record(eori=OWNER, record_id=created.record_id, fields={})


def test_patch_into_existing_trader_ref_conflicts_and_rolls_back(record_service):
    record_service.create_record(goods_item=_goods_item("BAN001"))
    second = record_service.create_record(goods_item=_goods_item("BAN002"))

    with pytest.raises(DuplicateKeyConflictError):
        record_service.patch_record(eori=OWNER, record_id=second.record_id, fields={"trader_ref": "BAN001"})

    assert record_service.get_record(eori=OWNER, record_id=second.record_id) == second


def test_deactivate_returns_prior_snapshot(record_service, clock):
    created = record_service.create_record(goods_item=_goods_item())
    clock.advance(timedelta(seconds=5))

    prior = record_service.deactivate_record(eori=OWNER, record_id=created.record_id, actor_id=OTHER)

    assert prior == created
    stored = record_service.get_record(eori=OWNER, record_id=created.record_id)
    assert stored.metadata.active is False
    assert stored.metadata.version == 2
    assert stored.goods_item.actor_id == OTHER
    assert stored.metadata.updated_date_time == datetime(2024, 6, 1, 12, 0, 5, tzinfo=timezone.utc)
    assert stored.metadata.declarable == Declarable.NOT_READY.value


def test_deactivate_never_moves_updated_time_backwards(record_service):
    created = record_service.create_record(goods_item=_goods_item())

    record_service.deactivate_record(eori=OWNER, record_id=created.record_id, actor_id=OWNER)

    stored = record_service.get_record(eori=OWNER, record_id=created.record_id)
    assert stored.metadata.updated_date_time == created.metadata.updated_date_time


def test_deactivating_inactive_record_still_bumps_version(record_service):
    created = record_service.create_record(goods_item=_goods_item())
    record_service.deactivate_record(eori=OWNER, record_id=created.record_id, actor_id=OWNER)

    prior = record_service.deactivate_record(eori=OWNER, record_id=created.record_id, actor_id=OWNER)

    assert prior.metadata.active is False
    assert prior.metadata.version == 2
    assert record_service.get_record(eori=OWNER, record_id=created.record_id).metadata.version == 3


def test_deactivate_unknown_record_is_not_found(record_service):
    with pytest.raises(RecordNotFoundError):
        record_service.deactivate_record(eori=OWNER, record_id="missing", actor_id=OWNER)


def test_deactivate_ignores_lock(record_service):
    created = record_service.create_record(goods_item=_goods_item())
    record_service.support_patch(eori=OWNER, record_id=created.record_id, fields={"locked": True})

    record_service.deactivate_record(eori=OWNER, record_id=created.record_id, actor_id=OWNER)

    assert record_service.get_record(eori=OWNER, record_id=created.record_id).metadata.active is False


def test_support_patch_without_fields_checks_existence(record_service):
    created = record_service.create_record(goods_item=_goods_item())

    record_service.support_patch(eori=OWNER, record_id=created.record_id, fields={})
    with pytest.raises(RecordNotFoundError):
        record_service.support_patch(eori=OWNER, record_id="missing", fields={})
    with pytest.raises(RecordNotFoundError):
        record_service.support_patch(eori=OTHER, record_id=created.record_id, fields={"locked": True})


def test_support_patch_rejects_goods_item_fields(record_service):
    created = record_service.create_record(goods_item=_goods_item())
    with pytest.raises(ValueError, match="unsupported metadata fields"):
        record_service.support_patch(eori=OWNER, record_id=created.record_id, fields={"comcode": "1"})


def test_list_records_pages_in_update_order(record_service, clock):
    created = []
    for index in range(10):
        created.append(record_service.create_record(goods_item=_goods_item(f"REF{index:02d}")))
        clock.advance(timedelta(seconds=1))
    record_service.create_record(goods_item=_goods_item("REF99", eori=OTHER))

    page = record_service.list_records(eori=OWNER, page=1, size=3)

    assert page.total_count == 10
    assert [r.goods_item.trader_ref for r in page.records] == ["REF03", "REF04", "REF05"]


def test_list_records_watermark_is_exclusive(record_service, clock):
    created = []
    for index in range(5):
        created.append(record_service.create_record(goods_item=_goods_item(f"REF{index:02d}")))
        clock.advance(timedelta(seconds=1))

    page = record_service.list_records(
        eori=OWNER,
        updated_after=created[2].metadata.updated_date_time,
        page=0,
        size=10,
    )

    assert page.total_count == 2
    assert [r.record_id for r in page.records] == [created[3].record_id, created[4].record_id]


def test_list_records_empty_owner(record_service):
    page = record_service.list_records(eori=OWNER, page=0, size=10)
    assert page.total_count == 0
    assert page.records == []


def test_list_records_page_beyond_end_keeps_total(record_service):
    record_service.create_record(goods_item=_goods_item())
    page = record_service.list_records(eori=OWNER, page=4, size=10)
    assert page.total_count == 1
    assert page.records == []


@pytest.mark.parametrize(("page", "size"), [(-1, 10), (0, 0)])
def test_list_records_rejects_bad_paging(record_service, page, size):
    with pytest.raises(ValueError):
        record_service.list_records(eori=OWNER, page=page, size=size)


def test_get_record_is_owner_scoped(record_service):
    created = record_service.create_record(goods_item=_goods_item())
    with pytest.raises(RecordNotFoundError):
        record_service.get_record(eori=OTHER, record_id=created.record_id)


def test_store_failure_is_surfaced_and_logged(clock, caplog):
    class FailingRepository:
        def in_transaction(self, fn):
            raise StoreUnavailableError("store unavailable: OperationalError")

    service = GoodsItemRecordService(repository=FailingRepository(), clock=clock)

    with caplog.at_level(logging.ERROR, logger="goods_profiles.services.goods_item_records"):
        with pytest.raises(StoreUnavailableError):
            service.patch_record(eori=OWNER, record_id="rec-1", fields={})

    assert any("goods_item_record_store_failed action=patch" in r.getMessage() for r in caplog.records)


def test_guard_rejection_logs_warning(record_service, caplog):
    created = record_service.create_record(goods_item=_goods_item())
    record_service.support_patch(eori=OWNER, record_id=created.record_id, fields={"locked": True})

    with caplog.at_level(logging.WARNING, logger="goods_profiles.services.goods_item_records"):
        with pytest.raises(RecordLockedError):
            record_service.patch_record(eori=OWNER, record_id=created.record_id, fields={})

    assert any("kind=locked" in r.getMessage() for r in caplog.records)
