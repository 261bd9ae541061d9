from goods_profiles.services.goods_item_records import GoodsItemRecordService
from goods_profiles.services.trader_profiles import TraderProfileService

__all__ = [
    "GoodsItemRecordService",
    "TraderProfileService",
]
