"""Exception taxonomy for the marketplace pipeline.

Business outcomes (no contractor, pool empty) are carried as values on the
result objects; the exceptions exist so callers that want to raise them can,
and so the webhook boundary has one type to map to a 5xx.
"""
from typing import Optional


class MarketplaceError(Exception):
    """Base class for every error raised by the pipeline."""


class LeadValidationError(MarketplaceError):
    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Lead failed validation")


class NoEligibleContractor(MarketplaceError):
    def __init__(self, reason: str, status: str = "no_contractor_available"):
        self.reason = reason
        self.status = status
        super().__init__(reason)


class TrackingPoolExhausted(MarketplaceError):
    def __init__(self, lead_id: Optional[object] = None):
        self.lead_id = lead_id
        super().__init__(f"No tracking numbers available (lead {lead_id})")


class WebhookPayloadError(MarketplaceError):
    """A telephony webhook is missing the fields needed to correlate it."""


class CronAuthError(MarketplaceError):
    """The cron shared secret was missing or wrong."""
