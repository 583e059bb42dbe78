"""Insert events delivered by the store's change stream.

Every backend (in-memory dispatch, MQTT fan-out) converts its inputs into
these events before handing them to subscribers.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from locatr._constants import INSERT_EVENT
from locatr._normalize import format_timestamp
from locatr.models._base import Timestamp


class InsertEvent(BaseModel):
    """A row inserted into a store table, carrying the full record."""

    model_config = ConfigDict(frozen=True)

    table: str = Field(..., description="Table the row was inserted into")
    type: str = Field(default=INSERT_EVENT)
    record: dict[str, Any] = Field(default_factory=dict, description="Full inserted record")
    commit_timestamp: Timestamp = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("table")
    @classmethod
    def _normalize_table(cls, value: str) -> str:
        table = value.strip()
        if not table:
            raise ValueError("table must be non-empty")
        return table

    @field_validator("type")
    @classmethod
    def _normalize_type(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def device_id(self) -> str | None:
        value = self.record.get("device_id")
        return None if value is None else str(value)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready mapping used on the wire."""
        return {
            "table": self.table,
            "type": self.type,
            "record": self.record,
            "commit_timestamp": format_timestamp(self.commit_timestamp),
        }
