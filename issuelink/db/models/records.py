"""Synced records from the CRM, support desk and issue tracker.

External sync jobs own these rows; reconciliation only reads them. Primary keys
are the upstream ids scoped by organization.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from issuelink.db.base import Base
from issuelink.db.types import JSONType, utcnow


class Account(Base):
    """Customer account from the CRM."""

    __tablename__ = "accounts"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    products: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    vertical: Mapped[str | None] = mapped_column(String(255), nullable=True)
    synced_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class SupportCase(Base):
    """
    Support case owned by an account.

    theme_key is attached upstream by a classifier and is opaque here.
    """

    __tablename__ = "support_cases"
    __table_args__ = (
        Index("idx_support_cases_org_account", "organization_id", "account_id"),
        Index("idx_support_cases_org_theme", "organization_id", "theme_key"),
    )

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # 18-char CRM record id
    external_case_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    theme_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    synced_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class Ticket(Base):
    """Issue-tracker ticket (key format PROJECT-NUMBER)."""

    __tablename__ = "tickets"
    __table_args__ = (Index("idx_tickets_org_key", "organization_id", "external_key"),)

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    external_key: Mapped[str] = mapped_column(String(50), nullable=False)
    custom_fields: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resolution_date: Mapped[datetime | None] = mapped_column(nullable=True)
    labels: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    synced_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class Theme(Base):
    """Named recurring issue theme."""

    __tablename__ = "themes"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
