from goods_profiles.repositories.goods_item_records import (
    InMemoryGoodsItemRecordsRepository,
    PostgresGoodsItemRecordsRepository,
)
from goods_profiles.repositories.trader_profiles import (
    InMemoryTraderProfilesRepository,
    PostgresTraderProfilesRepository,
)

__all__ = [
    "InMemoryGoodsItemRecordsRepository",
    "PostgresGoodsItemRecordsRepository",
    "InMemoryTraderProfilesRepository",
    "PostgresTraderProfilesRepository",
]
