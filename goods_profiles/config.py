from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

_THIRTY_DAYS_SECONDS = 30 * 24 * 60 * 60


def _env_int(env: Mapping[str, str], name: str, *, default: int, minimum: int = 0) -> int:
    raw = str(env.get(name, "")).strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, value)


def _env_bool(env: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = str(env.get(name, "")).strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def postgres_required(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return _env_bool(env, "GOODS_REQUIRE_POSTGRES", default=False)


@dataclass(frozen=True)
class ServiceConfig:
    store_backend: str
    postgres_dsn: str
    records_ttl_seconds: int
    profiles_ttl_seconds: int
    default_page_size: int
    max_page_size: int
    require_postgres: bool

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServiceConfig":
        env = os.environ if environ is None else environ
        max_page_size = _env_int(env, "GOODS_ITEM_RECORDS_MAX_SIZE", default=500, minimum=1)
        default_page_size = _env_int(env, "GOODS_ITEM_RECORDS_DEFAULT_SIZE", default=500, minimum=1)
        return cls(
            store_backend=str(env.get("GOODS_STORE_BACKEND", "memory")).strip().lower() or "memory",
            postgres_dsn=str(env.get("POSTGRES_DSN", "")).strip(),
            records_ttl_seconds=_env_int(
                env, "GOODS_ITEM_RECORDS_TTL_SECONDS", default=_THIRTY_DAYS_SECONDS, minimum=1
            ),
            profiles_ttl_seconds=_env_int(
                env, "TRADER_PROFILES_TTL_SECONDS", default=_THIRTY_DAYS_SECONDS, minimum=1
            ),
            default_page_size=min(default_page_size, max_page_size),
            max_page_size=max_page_size,
            require_postgres=postgres_required(env),
        )
