from __future__ import annotations

from typing import Any

from goods_profiles.db.postgres import PostgresTxRunner

GOODS_ITEM_RECORDS_DDL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS goods_item_records (
      record_id TEXT PRIMARY KEY,
      eori TEXT NOT NULL,
      actor_id TEXT NOT NULL,
      trader_ref TEXT NOT NULL,
      comcode TEXT NOT NULL,
      goods_description TEXT NOT NULL,
      country_of_origin TEXT NOT NULL,
      category SMALLINT,
      assessments JSONB NOT NULL DEFAULT '[]'::jsonb,
      supplementary_unit NUMERIC,
      measurement_unit TEXT,
      comcode_effective_from_date TIMESTAMPTZ NOT NULL,
      comcode_effective_to_date TIMESTAMPTZ,
      accreditation_status TEXT NOT NULL,
      version INTEGER NOT NULL,
      active BOOLEAN NOT NULL,
      locked BOOLEAN NOT NULL,
      to_review BOOLEAN NOT NULL,
      declarable TEXT,
      review_reason TEXT,
      src_system_name TEXT NOT NULL,
      created_date_time TIMESTAMPTZ NOT NULL,
      updated_date_time TIMESTAMPTZ NOT NULL,
      CONSTRAINT goods_item_records_eori_trader_ref_key UNIQUE (eori, trader_ref)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS goods_item_records_eori_updated_idx
      ON goods_item_records (eori, updated_date_time)
    """,
    """
    CREATE INDEX IF NOT EXISTS goods_item_records_updated_ttl_idx
      ON goods_item_records (updated_date_time)
    """,
)

TRADER_PROFILES_DDL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS trader_profiles (
      eori TEXT PRIMARY KEY,
      actor_id TEXT NOT NULL,
      ukims_number TEXT,
      nirms_number TEXT,
      niphl_number TEXT,
      last_updated TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS trader_profiles_last_updated_ttl_idx
      ON trader_profiles (last_updated)
    """,
)


def initialize_schema(tx_runner: PostgresTxRunner) -> None:
    def _op(conn: Any) -> None:
        with conn.cursor() as cur:
            for statement in (*GOODS_ITEM_RECORDS_DDL, *TRADER_PROFILES_DDL):
                cur.execute(statement)

    tx_runner.run_in_tx(fn=_op)
