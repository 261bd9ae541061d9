from goods_profiles.ops.expiry import expiry_cutoffs, purge_expired

__all__ = [
    "expiry_cutoffs",
    "purge_expired",
]
