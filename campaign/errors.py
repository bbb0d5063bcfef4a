"""
Failure taxonomy.

Per-recipient failures are not exceptions: they come back from the
DeliveryAttempter as an Outcome (SKIPPED / FAILED) and never abort a run.
The classes here are the conditions that do.
"""


class CampaignError(Exception):
    """Base class for campaign errors."""


class StartupFailure(CampaignError):
    """Required input is missing or unusable. Raised before any send."""


class PersistenceFailure(CampaignError):
    """A ledger or summary could not be read or written safely."""


class TransportError(CampaignError):
    """The messaging transport rejected or failed an operation."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status
