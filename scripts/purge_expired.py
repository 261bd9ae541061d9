#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from goods_profiles.clock import SystemClock
from goods_profiles.ops.expiry import purge_expired
from goods_profiles.store import create_store_from_env


def main() -> int:
    parser = argparse.ArgumentParser(description="Delete goods item records and trader profiles past their TTL.")
    parser.add_argument("--records-ttl-seconds", type=int, default=None, help="override record TTL")
    parser.add_argument("--profiles-ttl-seconds", type=int, default=None, help="override profile TTL")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    store = create_store_from_env()
    report = purge_expired(
        records_repository=store.records_repository,
        profiles_repository=store.profiles_repository,
        now=SystemClock().now(),
        records_ttl_seconds=args.records_ttl_seconds or store.config.records_ttl_seconds,
        profiles_ttl_seconds=args.profiles_ttl_seconds or store.config.profiles_ttl_seconds,
    )
    print(json.dumps(report, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
