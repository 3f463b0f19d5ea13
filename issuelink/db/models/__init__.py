"""SQLAlchemy ORM models."""

from issuelink.db.models.jobs import Job
from issuelink.db.models.links import AccountTicketLink, ThemeTicketLink
from issuelink.db.models.organizations import Organization
from issuelink.db.models.records import Account, SupportCase, Theme, Ticket

__all__ = [
    "Account",
    "AccountTicketLink",
    "Job",
    "Organization",
    "SupportCase",
    "Theme",
    "ThemeTicketLink",
    "Ticket",
]
