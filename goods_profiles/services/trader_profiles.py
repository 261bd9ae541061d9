from __future__ import annotations

import logging
from typing import Any

from goods_profiles.clock import Clock, SystemClock
from goods_profiles.errors import DuplicateKeyConflictError, TraderProfileNotFoundError
from goods_profiles.models import TraderProfile

logger = logging.getLogger(__name__)


class TraderProfileService:
    def __init__(self, *, repository: Any, clock: Clock | None = None) -> None:
        self._repository = repository
        self._clock = clock or SystemClock()

    def _build(
        self,
        *,
        eori: str,
        actor_id: str,
        ukims_number: str | None,
        nirms_number: str | None,
        niphl_number: str | None,
    ) -> TraderProfile:
        return TraderProfile(
            eori=eori,
            actor_id=actor_id,
            ukims_number=ukims_number,
            nirms_number=nirms_number,
            niphl_number=niphl_number,
            last_updated=self._clock.now(),
        )

    def create_profile(
        self,
        *,
        eori: str,
        actor_id: str,
        ukims_number: str | None = None,
        nirms_number: str | None = None,
        niphl_number: str | None = None,
    ) -> TraderProfile:
        profile = self._build(
            eori=eori,
            actor_id=actor_id,
            ukims_number=ukims_number,
            nirms_number=nirms_number,
            niphl_number=niphl_number,
        )
        try:
            created = self._repository.insert(profile=profile)
        except DuplicateKeyConflictError:
            logger.warning("trader_profile_duplicate eori=%s", eori)
            raise
        logger.info("trader_profile_created eori=%s", eori)
        return created

    def maintain_profile(
        self,
        *,
        eori: str,
        actor_id: str,
        ukims_number: str | None = None,
        nirms_number: str | None = None,
        niphl_number: str | None = None,
    ) -> TraderProfile:
        profile = self._repository.upsert(
            profile=self._build(
                eori=eori,
                actor_id=actor_id,
                ukims_number=ukims_number,
                nirms_number=nirms_number,
                niphl_number=niphl_number,
            )
        )
        logger.info("trader_profile_maintained eori=%s", eori)
        return profile

    def find_profile(self, *, eori: str) -> TraderProfile | None:
        return self._repository.get(eori=eori)

    def get_profile(self, *, eori: str) -> TraderProfile:
        profile = self.find_profile(eori=eori)
        if profile is None:
            raise TraderProfileNotFoundError(eori)
        return profile
