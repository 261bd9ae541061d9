from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

from goods_profiles.clock import Clock, SystemClock
from goods_profiles.declarable import evaluate_declarable
from goods_profiles.errors import (
    RecordInactiveError,
    RecordLockedError,
    RecordNotFoundError,
    RecordStoreError,
    StoreUnavailableError,
)
from goods_profiles.models import (
    Declarable,
    GoodsItem,
    GoodsItemRecord,
    GoodsItemRecordsPage,
    GOODS_ITEM_FIELDS,
    REQUIRED_GOODS_ITEM_FIELDS,
    SUPPORT_METADATA_FIELDS,
    stubbed_metadata,
)

logger = logging.getLogger(__name__)

# Values a replace writes for optional goods item fields the caller left out.
_CLEARED_OPTIONAL_FIELDS: dict[str, Any] = {
    "category": None,
    "assessments": (),
    "supplementary_unit": None,
    "measurement_unit": None,
    "comcode_effective_to_date": None,
}


def _new_record_id() -> str:
    return str(uuid.uuid4())


def _with_declarable(record: GoodsItemRecord, declarable: Declarable) -> GoodsItemRecord:
    return replace(record, metadata=replace(record.metadata, declarable=declarable.value))


def _check_goods_item_fields(fields: Mapping[str, Any]) -> None:
    unknown = sorted(set(fields) - set(GOODS_ITEM_FIELDS))
    if unknown:
        raise ValueError(f"unsupported goods item fields: {', '.join(unknown)}")


class GoodsItemRecordService:
    """Create, update, deactivate and list goods item records for one store."""

    def __init__(
        self,
        *,
        repository: Any,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or SystemClock()
        self._id_factory = id_factory or _new_record_id

    def create_record(self, *, goods_item: GoodsItem) -> GoodsItemRecord:
        now = self._clock.now()
        record = GoodsItemRecord(
            record_id=self._id_factory(),
            goods_item=goods_item,
            metadata=stubbed_metadata(goods_item.eori, now),
        )
        record = _with_declarable(record, evaluate_declarable(record, now))
        try:
            created = self._repository.insert(record=record)
        except RecordStoreError as exc:
            self._log_failure("create", exc, eori=goods_item.eori, record_id=record.record_id)
            raise
        logger.info(
            "goods_item_record_created record_id=%s eori=%s accreditation_status=%s",
            created.record_id,
            goods_item.eori,
            created.metadata.accreditation_status.value,
        )
        return created

    def patch_record(self, *, eori: str, record_id: str, fields: Mapping[str, Any]) -> GoodsItemRecord:
        """Write only the supplied fields; everything else keeps its stored value."""
        _check_goods_item_fields(fields)
        return self._guarded_update("patch", eori=eori, record_id=record_id, set_fields=dict(fields))

    def replace_record(self, *, eori: str, record_id: str, fields: Mapping[str, Any]) -> GoodsItemRecord:
        """Write every goods item field; optional fields left out are cleared."""
        _check_goods_item_fields(fields)
        missing = sorted(name for name in REQUIRED_GOODS_ITEM_FIELDS if fields.get(name) is None)
        if missing:
            raise ValueError(f"missing required goods item fields: {', '.join(missing)}")
        set_fields = {**_CLEARED_OPTIONAL_FIELDS, **fields}
        if set_fields["assessments"] is None:
            set_fields["assessments"] = ()
        return self._guarded_update("replace", eori=eori, record_id=record_id, set_fields=set_fields)

    def deactivate_record(self, *, eori: str, record_id: str, actor_id: str) -> GoodsItemRecord:
        """Soft delete; returns the record as it was before deactivation."""
        now = self._clock.now().replace(microsecond=0)
        try:
            prior = self._repository.deactivate(
                eori=eori,
                record_id=record_id,
                actor_id=actor_id,
                updated_at=now,
                declarable=Declarable.NOT_READY.value,
            )
        except RecordStoreError as exc:
            self._log_failure("deactivate", exc, eori=eori, record_id=record_id)
            raise
        if prior is None:
            exc = RecordNotFoundError(f"goods item record not found: {record_id}", record_id=record_id)
            self._log_failure("deactivate", exc, eori=eori, record_id=record_id)
            raise exc
        logger.info(
            "goods_item_record_deactivated record_id=%s eori=%s prior_version=%s",
            record_id,
            eori,
            prior.metadata.version,
        )
        return prior

    def support_patch(self, *, eori: str, record_id: str, fields: Mapping[str, Any]) -> None:
        unknown = sorted(set(fields) - set(SUPPORT_METADATA_FIELDS))
        if unknown:
            raise ValueError(f"unsupported metadata fields: {', '.join(unknown)}")
        try:
            found = self._repository.patch_metadata(eori=eori, record_id=record_id, fields=dict(fields))
        except RecordStoreError as exc:
            self._log_failure("support_patch", exc, eori=eori, record_id=record_id)
            raise
        if not found:
            exc = RecordNotFoundError(f"goods item record not found: {record_id}", record_id=record_id)
            self._log_failure("support_patch", exc, eori=eori, record_id=record_id)
            raise exc
        logger.info(
            "goods_item_record_support_patched record_id=%s eori=%s fields=%s",
            record_id,
            eori,
            ",".join(sorted(fields)),
        )

    def get_record(self, *, eori: str, record_id: str) -> GoodsItemRecord:
        record = self._repository.get(eori=eori, record_id=record_id)
        if record is None:
            raise RecordNotFoundError(f"goods item record not found: {record_id}", record_id=record_id)
        return record

    def list_records(
        self,
        *,
        eori: str,
        updated_after: datetime | None = None,
        page: int = 0,
        size: int,
    ) -> GoodsItemRecordsPage:
        if page < 0:
            raise ValueError("page must be >= 0")
        if size < 1:
            raise ValueError("size must be >= 1")
        return self._repository.list_page(eori=eori, updated_after=updated_after, page=page, size=size)

    def declarable_of(self, record: GoodsItemRecord) -> Declarable:
        return evaluate_declarable(record, self._clock.now())

    def _guarded_update(
        self,
        action: str,
        *,
        eori: str,
        record_id: str,
        set_fields: dict[str, Any],
    ) -> GoodsItemRecord:
        now = self._clock.now()

        def _tx(session: Any) -> GoodsItemRecord:
            current = session.find_by_record_id(record_id)
            # A record held by another owner is left for the owner-scoped update to report as missing.
            if current is not None and current.goods_item.eori == eori:
                if current.metadata.locked:
                    raise RecordLockedError(f"goods item record is locked: {record_id}", record_id=record_id)
                if not current.metadata.active:
                    raise RecordInactiveError(f"goods item record is inactive: {record_id}", record_id=record_id)
            updated = session.update_fields(
                eori=eori,
                record_id=record_id,
                set_fields=set_fields,
                updated_at=now,
            )
            if updated is None:
                raise RecordNotFoundError(f"goods item record not found: {record_id}", record_id=record_id)
            declarable = evaluate_declarable(updated, now)
            session.set_declarable(record_id=record_id, declarable=declarable.value)
            return _with_declarable(updated, declarable)

        try:
            record = self._repository.in_transaction(_tx)
        except RecordStoreError as exc:
            self._log_failure(action, exc, eori=eori, record_id=record_id)
            raise
        logger.info(
            "goods_item_record_updated action=%s record_id=%s eori=%s version=%s",
            action,
            record_id,
            eori,
            record.metadata.version,
        )
        return record

    @staticmethod
    def _log_failure(action: str, exc: RecordStoreError, *, eori: str, record_id: str) -> None:
        if isinstance(exc, StoreUnavailableError):
            logger.error(
                "goods_item_record_store_failed action=%s record_id=%s eori=%s",
                action,
                record_id,
                eori,
                exc_info=exc,
            )
            return
        logger.warning(
            "goods_item_record_rejected action=%s kind=%s record_id=%s eori=%s",
            action,
            exc.kind,
            record_id,
            eori,
        )
