"""Extract candidate case identifiers from tracker tickets."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

from issuelink.schemas.records import TicketRecord

CASE_NUMBER_PATTERN = re.compile(r"\b\d{8}\b")
RECORD_ID_PATTERN = re.compile(r"\b[A-Za-z0-9]{18}\b")

CUSTOM_FIELDS = "custom_fields"
TEXT_FIELDS = ("summary", "description", "labels")


@dataclass(frozen=True)
class ExtractedIdentifier:
    identifier: str
    source_field: str

    @property
    def from_custom_field(self) -> bool:
        return self.source_field.startswith(f"{CUSTOM_FIELDS}.")


def validate_field_specs(fields: Sequence[str]) -> tuple[str, ...]:
    """Check identifier field specs, raising ValueError on an unknown one."""
    for spec in fields:
        if spec == CUSTOM_FIELDS or spec in TEXT_FIELDS:
            continue
        if spec.startswith(f"{CUSTOM_FIELDS}.") and spec[len(CUSTOM_FIELDS) + 1 :]:
            continue
        raise ValueError(f"Unsupported identifier field: {spec!r}")
    return tuple(fields)


def _stringify(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        parts: list[str] = []
        for item in value:
            parts.extend(_stringify(item))
        return parts
    if isinstance(value, dict):
        return _stringify(list(value.values()))
    return [str(value)]


def _field_values(ticket: TicketRecord, spec: str) -> Iterator[tuple[str, Any]]:
    if spec == CUSTOM_FIELDS:
        for field_id in sorted(ticket.custom_fields):
            yield f"{CUSTOM_FIELDS}.{field_id}", ticket.custom_fields[field_id]
    elif spec.startswith(f"{CUSTOM_FIELDS}."):
        field_id = spec[len(CUSTOM_FIELDS) + 1 :]
        if field_id in ticket.custom_fields:
            yield spec, ticket.custom_fields[field_id]
    else:
        yield spec, getattr(ticket, spec)


def extract_identifiers(
    ticket: TicketRecord, fields: Sequence[str]
) -> list[ExtractedIdentifier]:
    """
    Scan the configured fields of a ticket for case numbers and record ids.

    Returns (identifier, source_field) pairs in field order without duplicates.
    The same identifier found in two fields is reported once per field.
    """
    seen: set[tuple[str, str]] = set()
    found: list[ExtractedIdentifier] = []
    for spec in fields:
        for source_field, raw in _field_values(ticket, spec):
            for text in _stringify(raw):
                for pattern in (CASE_NUMBER_PATTERN, RECORD_ID_PATTERN):
                    for match in pattern.findall(text):
                        key = (match, source_field)
                        if key in seen:
                            continue
                        seen.add(key)
                        found.append(ExtractedIdentifier(match, source_field))
    return found
