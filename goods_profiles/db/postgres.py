from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from goods_profiles.errors import DuplicateKeyConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)

_ISOLATION_LEVELS = {"READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"}


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgreSQL backends; install psycopg[binary]") from exc
    return psycopg


class PostgresTxRunner:
    """Run callback logic in one PostgreSQL transaction and map driver failures."""

    def __init__(self, dsn: str) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()

    def run_in_tx(
        self,
        *,
        fn: Callable[[Any], Any],
        isolation_level: str | None = None,
    ) -> Any:
        if isolation_level is not None and isolation_level not in _ISOLATION_LEVELS:
            raise ValueError(f"unsupported isolation level: {isolation_level}")

        psycopg = _import_psycopg()
        try:
            with psycopg.connect(self._dsn) as conn:
                if isolation_level is not None:
                    with conn.cursor() as cur:
                        cur.execute(f"SET TRANSACTION ISOLATION LEVEL {isolation_level}")
                result = fn(conn)
                conn.commit()
                return result
        except psycopg.errors.UniqueViolation as exc:
            constraint = getattr(getattr(exc, "diag", None), "constraint_name", None)
            logger.warning("postgres_unique_violation constraint=%s", constraint)
            raise DuplicateKeyConflictError(f"unique constraint violated: {constraint}") from exc
        except psycopg.Error as exc:
            logger.error("postgres_tx_failed error=%s", type(exc).__name__, exc_info=True)
            raise StoreUnavailableError(f"store unavailable: {type(exc).__name__}") from exc
