"""Account, case and tracker-ticket reconciliation."""

__version__ = "0.01.00"
