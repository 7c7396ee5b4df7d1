from .lead import (
    LeadSubmission,
    ValidationResult,
    ScoreResult,
    AssignedContractor,
    SubmissionResponse,
)
from .telephony import CallEvent, WebhookResponse
from .billing import (
    ChargeResult,
    SendResult,
    BillingOutcome,
    PoolStats,
    RecycleResult,
)

__all__ = [
    "LeadSubmission", "ValidationResult", "ScoreResult",
    "AssignedContractor", "SubmissionResponse",
    "CallEvent", "WebhookResponse",
    "ChargeResult", "SendResult", "BillingOutcome", "PoolStats", "RecycleResult",
]
