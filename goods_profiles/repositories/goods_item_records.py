from __future__ import annotations

import json
import re
import threading
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TypeVar

from goods_profiles.db.postgres import PostgresTxRunner
from goods_profiles.errors import DuplicateKeyConflictError
from goods_profiles.models import (
    AccreditationStatus,
    Category,
    GoodsItem,
    GoodsItemMetadata,
    GoodsItemRecord,
    GoodsItemRecordsPage,
    GOODS_ITEM_FIELDS,
    SUPPORT_METADATA_FIELDS,
    assessments_from_documents,
    assessments_to_documents,
)

T = TypeVar("T")

_ONE_MICROSECOND = timedelta(microseconds=1)

_GOODS_ITEM_COLUMNS: tuple[str, ...] = (
    "eori",
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

_METADATA_COLUMNS: tuple[str, ...] = (
    "accreditation_status",
    "version",
    "active",
    "locked",
    "to_review",
    "declarable",
    "review_reason",
    "src_system_name",
    "created_date_time",
    "updated_date_time",
)

_COLUMNS: tuple[str, ...] = ("record_id", *_GOODS_ITEM_COLUMNS, *_METADATA_COLUMNS)


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def _check_fields(fields: Mapping[str, Any], allowed: tuple[str, ...]) -> None:
    unknown = sorted(set(fields) - set(allowed))
    if unknown:
        raise ValueError(f"unsupported fields: {', '.join(unknown)}")


def _column_value(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column == "assessments":
        return json.dumps(assessments_to_documents(tuple(value)), ensure_ascii=True, sort_keys=True)
    if column == "category":
        return int(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _placeholder(column: str) -> str:
    return "%s::jsonb" if column == "assessments" else "%s"


def _row_to_record(row: tuple[Any, ...] | list[Any]) -> GoodsItemRecord:
    values = dict(zip(_COLUMNS, row))
    category = values["category"]
    return GoodsItemRecord(
        record_id=values["record_id"],
        goods_item=GoodsItem(
            eori=values["eori"],
            actor_id=values["actor_id"],
            trader_ref=values["trader_ref"],
            comcode=values["comcode"],
            goods_description=values["goods_description"],
            country_of_origin=values["country_of_origin"],
            category=Category(int(category)) if category is not None else None,
            assessments=assessments_from_documents(values["assessments"]),
            supplementary_unit=values["supplementary_unit"],
            measurement_unit=values["measurement_unit"],
            comcode_effective_from_date=values["comcode_effective_from_date"],
            comcode_effective_to_date=values["comcode_effective_to_date"],
        ),
        metadata=GoodsItemMetadata(
            accreditation_status=AccreditationStatus(values["accreditation_status"]),
            version=int(values["version"]),
            active=bool(values["active"]),
            locked=bool(values["locked"]),
            to_review=bool(values["to_review"]),
            declarable=values["declarable"],
            review_reason=values["review_reason"],
            src_system_name=values["src_system_name"],
            created_date_time=values["created_date_time"],
            updated_date_time=values["updated_date_time"],
        ),
    )


def _record_to_params(record: GoodsItemRecord) -> tuple[Any, ...]:
    params: list[Any] = [record.record_id]
    for column in _GOODS_ITEM_COLUMNS:
        params.append(_column_value(column, getattr(record.goods_item, column)))
    for column in _METADATA_COLUMNS:
        params.append(_column_value(column, getattr(record.metadata, column)))
    return tuple(params)


class InMemoryGoodsItemRecordsRepository:
    """Dict-backed store; transactions hold the lock and roll back from a snapshot."""

    def __init__(self, records: dict[str, GoodsItemRecord] | None = None) -> None:
        self._records = records if records is not None else {}
        self._lock = threading.RLock()

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def insert(self, *, record: GoodsItemRecord) -> GoodsItemRecord:
        with self._lock:
            if record.record_id in self._records:
                raise DuplicateKeyConflictError("recordId already exists", record_id=record.record_id)
            self._check_trader_ref_unique(record)
            self._records[record.record_id] = record
            return record

    def get(self, *, eori: str, record_id: str) -> GoodsItemRecord | None:
        with self._lock:
            record = self._records.get(record_id)
        if record is None or record.goods_item.eori != eori:
            return None
        return record

    def list_page(
        self,
        *,
        eori: str,
        updated_after: datetime | None,
        page: int,
        size: int,
    ) -> GoodsItemRecordsPage:
        with self._lock:
            matching = [
                record
                for record in self._records.values()
                if record.goods_item.eori == eori
                and (updated_after is None or record.metadata.updated_date_time > updated_after)
            ]
        matching.sort(key=lambda record: record.metadata.updated_date_time)
        offset = page * size
        return GoodsItemRecordsPage(records=matching[offset : offset + size], total_count=len(matching))

    def in_transaction(self, fn: Callable[["InMemoryGoodsItemRecordsSession"], T]) -> T:
        with self._lock:
            snapshot = dict(self._records)
            try:
                return fn(InMemoryGoodsItemRecordsSession(self))
            except Exception:
                self._records.clear()
                self._records.update(snapshot)
                raise

    def deactivate(
        self,
        *,
        eori: str,
        record_id: str,
        actor_id: str,
        updated_at: datetime,
        declarable: str,
    ) -> GoodsItemRecord | None:
        with self._lock:
            prior = self.get(eori=eori, record_id=record_id)
            if prior is None:
                return None
            self._records[record_id] = replace(
                prior,
                goods_item=replace(prior.goods_item, actor_id=actor_id),
                metadata=replace(
                    prior.metadata,
                    active=False,
                    version=prior.metadata.version + 1,
                    declarable=declarable,
                    updated_date_time=max(updated_at, prior.metadata.updated_date_time),
                ),
            )
            return prior

    def patch_metadata(self, *, eori: str, record_id: str, fields: Mapping[str, Any]) -> bool:
        _check_fields(fields, SUPPORT_METADATA_FIELDS)
        with self._lock:
            current = self.get(eori=eori, record_id=record_id)
            if current is None:
                return False
            if fields:
                self._records[record_id] = replace(current, metadata=replace(current.metadata, **fields))
            return True

    def purge_expired(self, *, cutoff: datetime) -> int:
        with self._lock:
            expired = [
                record_id
                for record_id, record in self._records.items()
                if record.metadata.updated_date_time < cutoff
            ]
            for record_id in expired:
                del self._records[record_id]
        return len(expired)

    def _check_trader_ref_unique(self, record: GoodsItemRecord) -> None:
        for other in self._records.values():
            if other.record_id == record.record_id:
                continue
            if (
                other.goods_item.eori == record.goods_item.eori
                and other.goods_item.trader_ref == record.goods_item.trader_ref
            ):
                raise DuplicateKeyConflictError("eori and traderRef already exist", record_id=record.record_id)

    def _find_by_record_id(self, record_id: str) -> GoodsItemRecord | None:
        return self._records.get(record_id)

    def _update_fields(
        self,
        *,
        eori: str,
        record_id: str,
        set_fields: Mapping[str, Any],
        updated_at: datetime,
    ) -> GoodsItemRecord | None:
        current = self.get(eori=eori, record_id=record_id)
        if current is None:
            return None
        updated = replace(
            current,
            goods_item=replace(current.goods_item, **set_fields),
            metadata=replace(
                current.metadata,
                version=current.metadata.version + 1,
                updated_date_time=max(updated_at, current.metadata.updated_date_time + _ONE_MICROSECOND),
            ),
        )
        self._check_trader_ref_unique(updated)
        self._records[record_id] = updated
        return updated

    def _set_declarable(self, record_id: str, declarable: str) -> None:
        current = self._records[record_id]
        self._records[record_id] = replace(current, metadata=replace(current.metadata, declarable=declarable))


class InMemoryGoodsItemRecordsSession:
    def __init__(self, repository: InMemoryGoodsItemRecordsRepository) -> None:
        self._repository = repository

    def find_by_record_id(self, record_id: str) -> GoodsItemRecord | None:
        return self._repository._find_by_record_id(record_id)

    def update_fields(
        self,
        *,
        eori: str,
        record_id: str,
        set_fields: Mapping[str, Any],
        updated_at: datetime,
    ) -> GoodsItemRecord | None:
        _check_fields(set_fields, GOODS_ITEM_FIELDS)
        return self._repository._update_fields(
            eori=eori,
            record_id=record_id,
            set_fields=set_fields,
            updated_at=updated_at,
        )

    def set_declarable(self, *, record_id: str, declarable: str) -> None:
        self._repository._set_declarable(record_id, declarable)


class PostgresGoodsItemRecordsRepository:
    """Goods item records on PostgreSQL; every query runs through the tx runner."""

    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "goods_item_records") -> None:
        self._tx_runner = tx_runner
        self._table_name = _validate_identifier(table_name)

    def reset(self) -> None:
        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                cur.execute(f"TRUNCATE TABLE {self._table_name}")

        self._tx_runner.run_in_tx(fn=_op)

    def insert(self, *, record: GoodsItemRecord) -> GoodsItemRecord:
        placeholders = ", ".join(_placeholder(column) for column in _COLUMNS)
        sql = f"""
            INSERT INTO {self._table_name} ({", ".join(_COLUMNS)})
            VALUES ({placeholders})
        """

        def _op(conn: Any) -> GoodsItemRecord:
            with conn.cursor() as cur:
                cur.execute(sql, _record_to_params(record))
            return record

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, eori: str, record_id: str) -> GoodsItemRecord | None:
        sql = f"""
            SELECT {", ".join(_COLUMNS)}
            FROM {self._table_name}
            WHERE record_id = %s AND eori = %s
            LIMIT 1
        """

        def _op(conn: Any) -> GoodsItemRecord | None:
            with conn.cursor() as cur:
                cur.execute(sql, (record_id, eori))
                row = cur.fetchone()
            return _row_to_record(row) if row is not None else None

        return self._tx_runner.run_in_tx(fn=_op)

    def list_page(
        self,
        *,
        eori: str,
        updated_after: datetime | None,
        page: int,
        size: int,
    ) -> GoodsItemRecordsPage:
        columns = ", ".join(_COLUMNS)
        page_columns = ", ".join(f"page.{column}" for column in _COLUMNS)
        where = "eori = %s"
        params: list[Any] = [eori]
        if updated_after is not None:
            where += " AND updated_date_time > %s"
            params.append(updated_after)
        # One round trip: the anchor row keeps the count even when the page is empty.
        sql = f"""
            WITH filtered AS (
                SELECT {columns} FROM {self._table_name} WHERE {where}
            ),
            page AS (
                SELECT {columns} FROM filtered
                ORDER BY updated_date_time ASC
                OFFSET %s LIMIT %s
            )
            SELECT (SELECT COUNT(*) FROM filtered) AS total_count, {page_columns}
            FROM (SELECT 1) AS anchor
            LEFT JOIN page ON TRUE
            ORDER BY page.updated_date_time ASC
        """
        params.extend([page * size, size])

        def _op(conn: Any) -> GoodsItemRecordsPage:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(params))
                rows = cur.fetchall()
            total_count = int(rows[0][0]) if rows else 0
            records = [_row_to_record(row[1:]) for row in rows if row[1] is not None]
            return GoodsItemRecordsPage(records=records, total_count=total_count)

        return self._tx_runner.run_in_tx(fn=_op)

    def in_transaction(self, fn: Callable[["PostgresGoodsItemRecordsSession"], T]) -> T:
        return self._tx_runner.run_in_tx(
            fn=lambda conn: fn(PostgresGoodsItemRecordsSession(conn, table_name=self._table_name)),
            isolation_level="REPEATABLE READ",
        )

    def deactivate(
        self,
        *,
        eori: str,
        record_id: str,
        actor_id: str,
        updated_at: datetime,
        declarable: str,
    ) -> GoodsItemRecord | None:
        prior_columns = ", ".join(f"prior.{column}" for column in _COLUMNS)
        # RETURNING the CTE columns yields the row as it was before the update.
        sql = f"""
            WITH prior AS (
                SELECT {", ".join(_COLUMNS)}
                FROM {self._table_name}
                WHERE record_id = %s AND eori = %s
                FOR UPDATE
            )
            UPDATE {self._table_name} AS target SET
                active = FALSE,
                version = target.version + 1,
                actor_id = %s,
                declarable = %s,
                updated_date_time = GREATEST(%s, target.updated_date_time)
            FROM prior
            WHERE target.record_id = prior.record_id
            RETURNING {prior_columns}
        """

        def _op(conn: Any) -> GoodsItemRecord | None:
            with conn.cursor() as cur:
                cur.execute(sql, (record_id, eori, actor_id, declarable, updated_at))
                row = cur.fetchone()
            return _row_to_record(row) if row is not None else None

        return self._tx_runner.run_in_tx(fn=_op)

    def patch_metadata(self, *, eori: str, record_id: str, fields: Mapping[str, Any]) -> bool:
        _check_fields(fields, SUPPORT_METADATA_FIELDS)
        if fields:
            assignments = ", ".join(f"{column} = %s" for column in fields)
            sql = f"UPDATE {self._table_name} SET {assignments} WHERE record_id = %s AND eori = %s"
            params = (*(_column_value(column, value) for column, value in fields.items()), record_id, eori)
        else:
            sql = f"SELECT 1 FROM {self._table_name} WHERE record_id = %s AND eori = %s"
            params = (record_id, eori)

        def _op(conn: Any) -> bool:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                if fields:
                    return cur.rowcount > 0
                return cur.fetchone() is not None

        return self._tx_runner.run_in_tx(fn=_op)

    def purge_expired(self, *, cutoff: datetime) -> int:
        sql = f"DELETE FROM {self._table_name} WHERE updated_date_time < %s"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, (cutoff,))
                return int(cur.rowcount)

        return self._tx_runner.run_in_tx(fn=_op)


class PostgresGoodsItemRecordsSession:
    """Statements issued on one open connection inside a running transaction."""

    def __init__(self, conn: Any, *, table_name: str) -> None:
        self._conn = conn
        self._table_name = _validate_identifier(table_name)

    def find_by_record_id(self, record_id: str) -> GoodsItemRecord | None:
        sql = f"""
            SELECT {", ".join(_COLUMNS)}
            FROM {self._table_name}
            WHERE record_id = %s
            FOR UPDATE
        """
        with self._conn.cursor() as cur:
            cur.execute(sql, (record_id,))
            row = cur.fetchone()
        return _row_to_record(row) if row is not None else None

    def update_fields(
        self,
        *,
        eori: str,
        record_id: str,
        set_fields: Mapping[str, Any],
        updated_at: datetime,
    ) -> GoodsItemRecord | None:
        _check_fields(set_fields, GOODS_ITEM_FIELDS)
        assignments = [f"{column} = {_placeholder(column)}" for column in set_fields]
        assignments.append("version = version + 1")
        assignments.append("updated_date_time = GREATEST(%s, updated_date_time + INTERVAL '1 microsecond')")
        sql = f"""
            UPDATE {self._table_name}
            SET {", ".join(assignments)}
            WHERE record_id = %s AND eori = %s
            RETURNING {", ".join(_COLUMNS)}
        """
        params = (
            *(_column_value(column, value) for column, value in set_fields.items()),
            updated_at,
            record_id,
            eori,
        )
        with self._conn.cursor() as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        return _row_to_record(row) if row is not None else None

    def set_declarable(self, *, record_id: str, declarable: str) -> None:
        with self._conn.cursor() as cur:
            cur.execute(
                f"UPDATE {self._table_name} SET declarable = %s WHERE record_id = %s",
                (declarable, record_id),
            )
