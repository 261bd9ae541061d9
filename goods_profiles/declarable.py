"""Derived approval-readiness of a goods item record.

The value is computed whenever a record is rendered. The raw ``declarable``
column only mirrors the last computed value for support tooling and is never
read back here.
"""

from __future__ import annotations

from datetime import datetime

from goods_profiles.models import Category, Declarable, GoodsItem, GoodsItemRecord

# category -> (minimum comcode length, result when the length is met)
_CATEGORY_RULES: dict[Category, tuple[int, Declarable]] = {
    Category.STANDARD: (6, Declarable.IMMI_READY),
    Category.CONTROLLED: (8, Declarable.IMMI_READY),
    Category.EXCLUDED: (0, Declarable.IMMI_NOT_READY),
}

if set(_CATEGORY_RULES) != set(Category):
    raise RuntimeError("declarable rule table must cover every category")


def comcode_in_effect(goods_item: GoodsItem, now: datetime) -> bool:
    if now < goods_item.comcode_effective_from_date:
        return False
    to_date = goods_item.comcode_effective_to_date
    return to_date is None or now <= to_date


def evaluate_declarable(record: GoodsItemRecord, now: datetime) -> Declarable:
    metadata = record.metadata
    goods_item = record.goods_item
    if not metadata.active or metadata.to_review:
        return Declarable.NOT_READY
    if not comcode_in_effect(goods_item, now):
        return Declarable.NOT_READY
    if goods_item.category is None:
        return Declarable.NOT_READY
    min_length, result = _CATEGORY_RULES[goods_item.category]
    if len(goods_item.comcode) < min_length:
        return Declarable.NOT_READY
    return result
