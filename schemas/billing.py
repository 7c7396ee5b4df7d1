"""Results returned by the billing, pool and collaborator layers."""
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class ChargeResult(BaseModel):
    success: bool
    charge_id: Optional[str] = None
    error_message: Optional[str] = None


class SendResult(BaseModel):
    success: bool
    error: Optional[str] = None


class BillingOutcome(BaseModel):
    """What one status callback did to the books."""

    action: str  # billed | duplicate | too_short | not_completed | no_assignment | rejected_caller
    billing_record_id: Optional[UUID] = None
    billing_status: Optional[str] = None
    amount: Optional[Decimal] = None
    paid_from_credit: bool = False
    number_released: bool = False
    contractor_id: Optional[UUID] = None
    credit_balance: Optional[Decimal] = None
    low_credit_threshold: Optional[Decimal] = None


class PoolStats(BaseModel):
    available: int
    assigned: int
    total: int
    utilization: str


class RecycleResult(PoolStats):
    recycled: int
