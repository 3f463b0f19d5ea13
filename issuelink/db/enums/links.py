"""Link, domain and rollup enums."""

from enum import Enum


class LinkStrategy(str, Enum):
    """
    Strategy that proposed an account/ticket link.

    Declaration order is chain order: earlier members are more reliable
    and run first.
    """

    DIRECT_CASE_ID = "direct_case_id"  # Case number / record id found on the ticket
    CLIENT_FIELD = "client_field"  # Client-name custom field matched an account name
    THEME_ASSOCIATION = "theme_association"  # Ticket theme seen on the account's cases

    @property
    def precedence(self) -> int:
        return list(LinkStrategy).index(self)


class ThemeMatchType(str, Enum):
    """Evidence behind a theme/ticket link."""

    DIRECT_CASE_ID = "direct_case_id"
    LABEL = "label"
    KEYWORD = "keyword"


class Domain(str, Enum):
    """Coarse business line of a ticket or account."""

    STORAGE = "storage"
    MARINE = "marine"
    SHARED = "shared"  # Platform projects, affect every line
    UNCLASSIFIED = "unclassified"

    @property
    def is_specific(self) -> bool:
        return self not in (Domain.SHARED, Domain.UNCLASSIFIED)


class TicketProgress(str, Enum):
    """Remediation state of a tracker ticket."""

    RESOLVED = "resolved"
    IN_PROGRESS = "in_progress"
    OPEN = "open"


class RunStatus(str, Enum):
    """Outcome of a reconciliation run."""

    COMPLETED = "completed"
    PARTIAL = "partial"  # Some write batches failed after retries
