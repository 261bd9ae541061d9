from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

logger = logging.getLogger(__name__)


def expiry_cutoffs(
    *,
    now: datetime,
    records_ttl_seconds: int,
    profiles_ttl_seconds: int,
) -> dict[str, datetime]:
    if records_ttl_seconds < 1 or profiles_ttl_seconds < 1:
        raise ValueError("ttl seconds must be >= 1")
    return {
        "goods_item_records": now - timedelta(seconds=records_ttl_seconds),
        "trader_profiles": now - timedelta(seconds=profiles_ttl_seconds),
    }


def purge_expired(
    *,
    records_repository: Any,
    profiles_repository: Any,
    now: datetime,
    records_ttl_seconds: int,
    profiles_ttl_seconds: int,
) -> dict[str, Any]:
    """Hard-delete rows whose last update is older than their time-to-live."""
    cutoffs = expiry_cutoffs(
        now=now,
        records_ttl_seconds=records_ttl_seconds,
        profiles_ttl_seconds=profiles_ttl_seconds,
    )
    removed_records = records_repository.purge_expired(cutoff=cutoffs["goods_item_records"])
    removed_profiles = profiles_repository.purge_expired(cutoff=cutoffs["trader_profiles"])
    logger.info(
        "expired_rows_purged goods_item_records=%s trader_profiles=%s",
        removed_records,
        removed_profiles,
    )
    return {
        "goods_item_records": {
            "cutoff": cutoffs["goods_item_records"].isoformat(),
            "removed": removed_records,
        },
        "trader_profiles": {
            "cutoff": cutoffs["trader_profiles"].isoformat(),
            "removed": removed_profiles,
        },
    }
