"""Pydantic models for synced input records.

Rows coming out of a repository (ORM objects or plain dicts) are validated here
before reconciliation touches them; a ValidationError marks the record as
malformed.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from issuelink.utils.datetime_parsing import coerce_utc_datetime
from issuelink.utils.normalization import split_list_value


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, str_strip_whitespace=True)


class AccountRecord(_Record):
    """Customer account."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    products: list[str] = []
    vertical: str | None = None

    @field_validator("products", mode="before")
    @classmethod
    def split_products(cls, v: Any) -> list[str]:
        """Accept a tag list or a comma/semicolon separated string."""
        return split_list_value(v)


class CaseRecord(_Record):
    """Support case."""

    id: str = Field(..., min_length=1)
    external_case_number: str | None = None
    account_id: str | None = None
    theme_key: str | None = None

    @field_validator("external_case_number", "account_id", "theme_key", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        value = str(v).strip()
        return value or None


class TicketRecord(_Record):
    """Tracker ticket."""

    id: str = Field(..., min_length=1)
    external_key: str = Field(..., pattern=r"^[A-Za-z][A-Za-z0-9]*-\d+$")
    custom_fields: dict[str, Any] = {}
    summary: str | None = None
    description: str | None = None
    status: str | None = None
    resolution_date: datetime | None = None
    labels: list[str] = []

    @field_validator("custom_fields", mode="before")
    @classmethod
    def default_custom_fields(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("labels", mode="before")
    @classmethod
    def split_labels(cls, v: Any) -> list[str]:
        return split_list_value(v)

    @field_validator("resolution_date", mode="before")
    @classmethod
    def parse_resolution_date(cls, v: Any) -> datetime | None:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        parsed = coerce_utc_datetime(v)
        if parsed is None:
            raise ValueError(f"Invalid resolution_date {v!r}")
        return parsed


class ThemeRecord(_Record):
    """Issue theme."""

    key: str = Field(..., min_length=1)
    label: str | None = None
