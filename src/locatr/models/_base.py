"""Base model for store records and capability payloads.

Every locatr record model inherits from :class:`LocatrBaseModel` which
provides:

* ``populate_by_name`` so both wire names (``timestamp``,
  ``device_code``) and Python field names are accepted.
* A ``model_validator(mode="before")`` that drops empty values
  (``None``, ``""``, NaN) so the field default is used.
* Immutability; a record is never mutated after capture.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_validator

from locatr._normalize import parse_timestamp

Timestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces ISO strings and epoch numbers to UTC datetimes."""

OptionalTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]


class LocatrBaseModel(BaseModel):
    """Base for locatr record models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_empty_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned
