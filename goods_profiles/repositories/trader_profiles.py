from __future__ import annotations

import re
import threading
from datetime import datetime
from typing import Any

from goods_profiles.db.postgres import PostgresTxRunner
from goods_profiles.errors import DuplicateKeyConflictError
from goods_profiles.models import TraderProfile

_COLUMNS = "eori, actor_id, ukims_number, nirms_number, niphl_number, last_updated"


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def _params(profile: TraderProfile) -> tuple[Any, ...]:
    return (
        profile.eori,
        profile.actor_id,
        profile.ukims_number,
        profile.nirms_number,
        profile.niphl_number,
        profile.last_updated,
    )


class InMemoryTraderProfilesRepository:
    def __init__(self, profiles: dict[str, TraderProfile] | None = None) -> None:
        self._profiles = profiles if profiles is not None else {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        with self._lock:
            self._profiles.clear()

    def insert(self, *, profile: TraderProfile) -> TraderProfile:
        with self._lock:
            if profile.eori in self._profiles:
                raise DuplicateKeyConflictError(f"trader profile already exists: {profile.eori}")
            self._profiles[profile.eori] = profile
        return profile

    def upsert(self, *, profile: TraderProfile) -> TraderProfile:
        with self._lock:
            self._profiles[profile.eori] = profile
        return profile

    def get(self, *, eori: str) -> TraderProfile | None:
        with self._lock:
            return self._profiles.get(eori)

    def purge_expired(self, *, cutoff: datetime) -> int:
        with self._lock:
            expired = [eori for eori, profile in self._profiles.items() if profile.last_updated < cutoff]
            for eori in expired:
                del self._profiles[eori]
        return len(expired)


class PostgresTraderProfilesRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "trader_profiles") -> None:
        self._tx_runner = tx_runner
        self._table_name = _validate_identifier(table_name)

    def reset(self) -> None:
        def _op(conn: Any) -> None:
            with conn.cursor() as cur:
                cur.execute(f"TRUNCATE TABLE {self._table_name}")

        self._tx_runner.run_in_tx(fn=_op)

    def insert(self, *, profile: TraderProfile) -> TraderProfile:
        sql = f"""
            INSERT INTO {self._table_name} ({_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s)
        """

        def _op(conn: Any) -> TraderProfile:
            with conn.cursor() as cur:
                cur.execute(sql, _params(profile))
            return profile

        return self._tx_runner.run_in_tx(fn=_op)

    def upsert(self, *, profile: TraderProfile) -> TraderProfile:
        sql = f"""
            INSERT INTO {self._table_name} ({_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT(eori) DO UPDATE SET
                actor_id = EXCLUDED.actor_id,
                ukims_number = EXCLUDED.ukims_number,
                nirms_number = EXCLUDED.nirms_number,
                niphl_number = EXCLUDED.niphl_number,
                last_updated = EXCLUDED.last_updated
        """

        def _op(conn: Any) -> TraderProfile:
            with conn.cursor() as cur:
                cur.execute(sql, _params(profile))
            return profile

        return self._tx_runner.run_in_tx(fn=_op)

    def get(self, *, eori: str) -> TraderProfile | None:
        sql = f"""
            SELECT {_COLUMNS}
            FROM {self._table_name}
            WHERE eori = %s
            LIMIT 1
        """

        def _op(conn: Any) -> TraderProfile | None:
            with conn.cursor() as cur:
                cur.execute(sql, (eori,))
                row = cur.fetchone()
            if row is None:
                return None
            return TraderProfile(
                eori=row[0],
                actor_id=row[1],
                ukims_number=row[2],
                nirms_number=row[3],
                niphl_number=row[4],
                last_updated=row[5],
            )

        return self._tx_runner.run_in_tx(fn=_op)

    def purge_expired(self, *, cutoff: datetime) -> int:
        sql = f"DELETE FROM {self._table_name} WHERE last_updated < %s"

        def _op(conn: Any) -> int:
            with conn.cursor() as cur:
                cur.execute(sql, (cutoff,))
                return int(cur.rowcount)

        return self._tx_runner.run_in_tx(fn=_op)
