"""
Lucid — Common Primitives

Shared base model and utilities used across all systems.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from ulid import ULID


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


class LucidBaseModel(BaseModel):
    """
    Base model for all Lucid primitives.

    Fields are snake_case in Python and camelCase on the wire, matching
    the dashboard's JSON contract. Instances are frozen once created.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        frozen=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
