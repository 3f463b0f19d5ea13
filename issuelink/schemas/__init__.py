"""Pydantic schemas for records and API request/response models."""

from issuelink.schemas.records import AccountRecord, CaseRecord, ThemeRecord, TicketRecord
from issuelink.schemas.reconciliation import (
    LinkRead,
    ReconcileRequest,
    RollupRead,
    RunReportRead,
    ThemeLinkRead,
    TicketDiagnosisRead,
    WipeResponse,
)

__all__ = [
    "AccountRecord",
    "CaseRecord",
    "LinkRead",
    "ReconcileRequest",
    "RollupRead",
    "RunReportRead",
    "ThemeLinkRead",
    "ThemeRecord",
    "TicketDiagnosisRead",
    "TicketRecord",
    "WipeResponse",
]
