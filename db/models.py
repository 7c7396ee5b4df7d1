"""SQLAlchemy 2.0 ORM models for the lead marketplace.

Covers 9 tables:
  - demand:   leads
  - supply:   contractors, contractor_service_zips
  - matching: lead_assignments, tracking_numbers
  - money:    billing_records, credit_transactions, disputes
  - telephony: call_logs

Every timestamp column has a Python-side default as well as a server
default so freshly inserted rows never carry expired attributes (the async
session cannot lazy-load them).
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """timestamptz that always comes back timezone-aware in UTC.

    SQLite has no zone support and returns naive values; they are stored as
    UTC wall time, so tagging them on the way out is lossless.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


def _in_check(column: str, values: tuple[str, ...], nullable: bool = False) -> str:
    clause = f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"
    if nullable:
        return f"{column} IS NULL OR {clause}"
    return clause


# ---------------------------------------------------------------------------
# Status values used in CHECK constraints
# ---------------------------------------------------------------------------

LEAD_CATEGORIES = ("PLATINUM", "GOLD", "SILVER", "BRONZE", "NURTURE")

LEAD_STATUSES = (
    "pending_assignment",
    "assigned",
    "contacted",
    "nurture_no_assignment",
    "no_contractor_available",
    "contractors_at_capacity",
)

CONTRACTOR_STATUSES = ("active", "suspended")
SUBSCRIPTION_TIERS = ("starter", "pro", "elite")
SUBSCRIPTION_STATUSES = ("active", "inactive", "past_due", "cancelled")
ASSIGNMENT_STATUSES = ("assigned", "contacted", "disputed", "credited")
NUMBER_STATUSES = ("available", "assigned")
BILLING_STATUSES = ("pending", "paid", "failed", "invoiced", "credited")
CREDIT_TRANSACTION_TYPES = ("deposit", "deduction", "expiration", "refund")
DISPUTE_STATUSES = ("pending", "approved", "denied")
DISPUTE_RESOLUTIONS = ("full_credit", "partial_credit", "denied")


# ===========================================================================
# Demand side
# ===========================================================================


class Lead(Base):
    """leads: a scored customer service request. Never deleted."""

    __tablename__ = "leads"
    __table_args__ = (
        CheckConstraint(_in_check("category", LEAD_CATEGORIES), name="ck_lead_category"),
        CheckConstraint(_in_check("status", LEAD_STATUSES), name="ck_lead_status"),
        CheckConstraint("confidence_level BETWEEN 0 AND 95", name="ck_lead_confidence"),
        Index("ix_leads_customer_email", "customer_email"),
        Index("ix_leads_customer_phone", "customer_phone"),
        Index("ix_leads_ip_address", "ip_address"),
        Index("ix_leads_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Customer
    customer_first_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_last_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_email: Mapped[str] = mapped_column(Text, nullable=False)
    customer_phone: Mapped[str] = mapped_column(Text, nullable=False)  # 10 digits
    customer_address: Mapped[str] = mapped_column(Text, nullable=False)
    customer_city: Mapped[str] = mapped_column(Text, nullable=False)
    customer_state: Mapped[str] = mapped_column(Text, nullable=False)
    customer_zip: Mapped[str] = mapped_column(Text, nullable=False)

    # Service
    service_type: Mapped[str] = mapped_column(Text, nullable=False)
    service_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timeline: Mapped[str] = mapped_column(Text, nullable=False)
    budget_range: Mapped[str] = mapped_column(Text, nullable=False)
    property_type: Mapped[str] = mapped_column(Text, nullable=False)
    property_age: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    existing_system: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    system_issue: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Contact preferences and marketing attribution
    preferred_contact_time: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preferred_contact_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    referral_source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    utm_source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    utm_medium: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    utm_campaign: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Form metadata
    form_completion_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Scoring outputs (fixed at creation)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    confidence_level: Mapped[int] = mapped_column(Integer, nullable=False)
    quality_flags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default="pending_assignment", server_default="pending_assignment"
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    first_contact_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name} {self.customer_last_name}"


# ===========================================================================
# Supply side
# ===========================================================================


class Contractor(Base):
    """contractors: a service provider that buys leads."""

    __tablename__ = "contractors"
    __table_args__ = (
        CheckConstraint(_in_check("status", CONTRACTOR_STATUSES), name="ck_contractor_status"),
        CheckConstraint(
            _in_check("subscription_tier", SUBSCRIPTION_TIERS, nullable=True),
            name="ck_contractor_tier",
        ),
        CheckConstraint(
            _in_check("subscription_status", SUBSCRIPTION_STATUSES),
            name="ck_contractor_subscription_status",
        ),
        CheckConstraint("credit_balance >= 0", name="ck_contractor_credit_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    business_name: Mapped[str] = mapped_column(Text, nullable=False)
    owner_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    phone: Mapped[str] = mapped_column(Text, nullable=False)

    specializations: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Capacity; NULL means no limit
    max_leads_per_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_leads_per_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_lead_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    total_leads_received: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    # Performance; NULL is treated as worst case
    avg_response_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes
    conversion_rate: Mapped[Optional[float]] = mapped_column(Numeric(5, 4, asdecimal=False), nullable=True)
    customer_rating: Mapped[Optional[float]] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=True)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="active", server_default="active")
    is_accepting_leads: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    suspension_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Subscription and billing
    subscription_tier: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subscription_status: Mapped[str] = mapped_column(
        Text, nullable=False, default="inactive", server_default="inactive"
    )
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    stripe_payment_method_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_method_last4: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_method_brand: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    credit_balance: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    is_beta_tester: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    beta_tester_lead_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    service_zips: Mapped[list["ContractorServiceZip"]] = relationship(
        "ContractorServiceZip",
        back_populates="contractor",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def service_zip_codes(self) -> set[str]:
        return {z.zip_code for z in self.service_zips}

    @property
    def has_payment_method(self) -> bool:
        return bool(self.stripe_payment_method_id)


class ContractorServiceZip(Base):
    """contractor_service_zips: one row per ZIP code a contractor covers."""

    __tablename__ = "contractor_service_zips"
    __table_args__ = (Index("ix_contractor_service_zips_zip", "zip_code"),)

    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), primary_key=True
    )
    zip_code: Mapped[str] = mapped_column(Text, primary_key=True)

    contractor: Mapped["Contractor"] = relationship("Contractor", back_populates="service_zips")


# ===========================================================================
# Matching
# ===========================================================================


class LeadAssignment(Base):
    """lead_assignments: the single pairing of a lead with a contractor."""

    __tablename__ = "lead_assignments"
    __table_args__ = (
        CheckConstraint(_in_check("status", ASSIGNMENT_STATUSES), name="ck_assignment_status"),
        UniqueConstraint("lead_id", name="uq_assignment_lead"),
        Index("ix_lead_assignments_contractor_assigned", "contractor_id", "assigned_at"),
        Index("ix_lead_assignments_tracking_number", "tracking_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lead_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("leads.id"), nullable=False)
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), nullable=False
    )
    assigned_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    response_deadline: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="assigned", server_default="assigned")
    tracking_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class TrackingNumber(Base):
    """tracking_numbers: pooled call-tracking numbers, recycled forever."""

    __tablename__ = "tracking_numbers"
    __table_args__ = (
        CheckConstraint(_in_check("status", NUMBER_STATUSES), name="ck_tracking_number_status"),
        CheckConstraint(
            "(status = 'available' AND current_lead_id IS NULL) OR "
            "(status = 'assigned' AND current_lead_id IS NOT NULL AND expires_at IS NOT NULL)",
            name="ck_tracking_number_assignment",
        ),
        Index("ix_tracking_numbers_status", "status"),
        Index("ix_tracking_numbers_expires_at", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="available", server_default="available")
    current_lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )


# ===========================================================================
# Money
# ===========================================================================


class BillingRecord(Base):
    """billing_records: at most one charge per (lead, contractor)."""

    __tablename__ = "billing_records"
    __table_args__ = (
        CheckConstraint(_in_check("status", BILLING_STATUSES), name="ck_billing_status"),
        UniqueConstraint("lead_id", "contractor_id", name="uq_billing_lead_contractor"),
        Index("ix_billing_records_contractor", "contractor_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lead_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("leads.id"), nullable=False)
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), nullable=False
    )
    amount_owed: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    stripe_payment_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    invoice_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date_incurred: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    invoiced_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class CreditTransaction(Base):
    """credit_transactions: ledger of prepaid credit movements."""

    __tablename__ = "credit_transactions"
    __table_args__ = (
        CheckConstraint(_in_check("type", CREDIT_TRANSACTION_TYPES), name="ck_credit_tx_type"),
        Index("ix_credit_transactions_contractor", "contractor_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("leads.id"), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    is_expired: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    related_transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )


class Dispute(Base):
    """disputes: contractor challenges to a billed lead."""

    __tablename__ = "disputes"
    __table_args__ = (
        CheckConstraint(_in_check("status", DISPUTE_STATUSES), name="ck_dispute_status"),
        CheckConstraint(
            _in_check("resolution", DISPUTE_RESOLUTIONS, nullable=True),
            name="ck_dispute_resolution",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lead_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("leads.id"), nullable=False)
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    evidence: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    credit_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


# ===========================================================================
# Telephony
# ===========================================================================


class CallLog(Base):
    """call_logs: one row per provider call leg, keyed by call SID."""

    __tablename__ = "call_logs"
    __table_args__ = (
        UniqueConstraint("call_sid", name="uq_call_log_sid"),
        Index("ix_call_logs_lead", "lead_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    call_sid: Mapped[str] = mapped_column(Text, nullable=False)
    lead_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("leads.id"), nullable=False)
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id"), nullable=False
    )
    call_direction: Mapped[str] = mapped_column(
        Text, nullable=False, default="contractor_to_customer", server_default="contractor_to_customer"
    )
    tracking_number: Mapped[str] = mapped_column(Text, nullable=False)
    call_status: Mapped[str] = mapped_column(Text, nullable=False)
    call_started_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, server_default=func.now(), nullable=False
    )
    call_ended_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    call_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    recording_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recording_sid: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
