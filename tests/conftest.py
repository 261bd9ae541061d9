import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from goods_profiles.main import create_app
from goods_profiles.repositories import InMemoryGoodsItemRecordsRepository
from goods_profiles.services import GoodsItemRecordService
from goods_profiles.store import store

OWNER_EORI = "GB123456789001"
OTHER_EORI = "GB123456789002"


class FixedClock:
    """Clock pinned to one instant; tests move it explicitly."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("instant must be timezone-aware")
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def advance(self, delta: timedelta) -> datetime:
        self._instant = self._instant + delta
        return self._instant


@pytest.fixture(autouse=True)
def reset_store():
    store.reset()
    yield


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 6, 1, 12, 0, 0, 250000, tzinfo=timezone.utc))


@pytest.fixture
def record_repository() -> InMemoryGoodsItemRecordsRepository:
    return InMemoryGoodsItemRecordsRepository()


@pytest.fixture
def record_service(record_repository, clock) -> GoodsItemRecordService:
    counter = iter(range(1, 10_000))
    return GoodsItemRecordService(
        repository=record_repository,
        clock=clock,
        id_factory=lambda: f"rec-{next(counter):04d}",
    )


def record_payload(**overrides):
    payload = {
        "eori": OWNER_EORI,
        "actorId": OWNER_EORI,
        "traderRef": "BAN001001",
        "comcode": "10410100",
        "goodsDescription": "Organic bananas",
        "countryOfOrigin": "EC",
        "category": 3,
        "comcodeEffectiveFromDate": "2024-01-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


def create_profile(client: TestClient, eori: str = OWNER_EORI, **overrides):
    body = {"eori": eori, "actorId": eori, "ukimsNumber": "XIUKIM47699357400020231115081800"}
    body.update(overrides)
    resp = client.post("/api/v1/profiles", json=body)
    assert resp.status_code == 201
    return resp.json()["data"]
