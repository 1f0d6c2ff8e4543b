from lucid.primitives.common import LucidBaseModel, new_id, utc_now

__all__ = ["LucidBaseModel", "new_id", "utc_now"]
