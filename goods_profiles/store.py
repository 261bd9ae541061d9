from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

from goods_profiles.clock import Clock, SystemClock
from goods_profiles.config import ServiceConfig
from goods_profiles.db.postgres import PostgresTxRunner
from goods_profiles.db.schema import initialize_schema
from goods_profiles.repositories import (
    InMemoryGoodsItemRecordsRepository,
    InMemoryTraderProfilesRepository,
    PostgresGoodsItemRecordsRepository,
    PostgresTraderProfilesRepository,
)
from goods_profiles.services import GoodsItemRecordService, TraderProfileService

logger = logging.getLogger(__name__)


class Store:
    """Repositories plus the services bound to them for one backend."""

    def __init__(
        self,
        *,
        config: ServiceConfig,
        records_repository: Any,
        profiles_repository: Any,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.clock = clock or SystemClock()
        self.records_repository = records_repository
        self.profiles_repository = profiles_repository
        self.records = GoodsItemRecordService(repository=records_repository, clock=self.clock)
        self.profiles = TraderProfileService(repository=profiles_repository, clock=self.clock)

    @property
    def backend(self) -> str:
        return self.config.store_backend

    def reset(self) -> None:
        self.records_repository.reset()
        self.profiles_repository.reset()


def create_store_from_env(environ: Mapping[str, str] | None = None, *, clock: Clock | None = None) -> Store:
    env = os.environ if environ is None else environ
    config = ServiceConfig.from_env(env)
    if config.require_postgres and config.store_backend != "postgres":
        raise RuntimeError("GOODS_STORE_BACKEND must be postgres when GOODS_REQUIRE_POSTGRES=true")
    if config.store_backend == "postgres":
        if not config.postgres_dsn:
            raise ValueError("POSTGRES_DSN must be set when GOODS_STORE_BACKEND=postgres")
        tx_runner = PostgresTxRunner(config.postgres_dsn)
        initialize_schema(tx_runner)
        logger.info("store_initialized backend=postgres")
        return Store(
            config=config,
            records_repository=PostgresGoodsItemRecordsRepository(tx_runner=tx_runner),
            profiles_repository=PostgresTraderProfilesRepository(tx_runner=tx_runner),
            clock=clock,
        )
    if config.store_backend != "memory":
        raise ValueError(f"unsupported GOODS_STORE_BACKEND: {config.store_backend}")
    return Store(
        config=config,
        records_repository=InMemoryGoodsItemRecordsRepository(),
        profiles_repository=InMemoryTraderProfilesRepository(),
        clock=clock,
    )


store = create_store_from_env()
