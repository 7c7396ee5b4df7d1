"""Initial schema: leads, contractors, matching, money and telephony tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = True, default_now: bool = False) -> sa.Column:
    if default_now:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    # ─── Demand ──────────────────────────────────────────────────────────────

    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_first_name", sa.Text, nullable=False),
        sa.Column("customer_last_name", sa.Text, nullable=False),
        sa.Column("customer_email", sa.Text, nullable=False),
        sa.Column("customer_phone", sa.Text, nullable=False),
        sa.Column("customer_address", sa.Text, nullable=False),
        sa.Column("customer_city", sa.Text, nullable=False),
        sa.Column("customer_state", sa.Text, nullable=False),
        sa.Column("customer_zip", sa.Text, nullable=False),
        sa.Column("service_type", sa.Text, nullable=False),
        sa.Column("service_description", sa.Text, nullable=True),
        sa.Column("timeline", sa.Text, nullable=False),
        sa.Column("budget_range", sa.Text, nullable=False),
        sa.Column("property_type", sa.Text, nullable=False),
        sa.Column("property_age", sa.Text, nullable=True),
        sa.Column("existing_system", sa.Text, nullable=True),
        sa.Column("system_issue", sa.Text, nullable=True),
        sa.Column("preferred_contact_time", sa.Text, nullable=True),
        sa.Column("preferred_contact_method", sa.Text, nullable=True),
        sa.Column("referral_source", sa.Text, nullable=True),
        sa.Column("utm_source", sa.Text, nullable=True),
        sa.Column("utm_medium", sa.Text, nullable=True),
        sa.Column("utm_campaign", sa.Text, nullable=True),
        sa.Column("form_completion_time", sa.Integer, nullable=True),
        sa.Column("ip_address", sa.Text, nullable=True),
        sa.Column("user_agent", sa.Text, nullable=True),
        sa.Column("score", sa.Integer, nullable=False),
        sa.Column("category", sa.Text, nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("confidence_level", sa.Integer, nullable=False),
        sa.Column("quality_flags", sa.JSON, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending_assignment"),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        _ts("created_at", default_now=True),
        _ts("assigned_at"),
        _ts("first_contact_at"),
        sa.CheckConstraint(
            "category IN ('PLATINUM','GOLD','SILVER','BRONZE','NURTURE')",
            name="ck_lead_category",
        ),
        sa.CheckConstraint(
            "status IN ('pending_assignment','assigned','contacted',"
            "'nurture_no_assignment','no_contractor_available','contractors_at_capacity')",
            name="ck_lead_status",
        ),
        sa.CheckConstraint("confidence_level BETWEEN 0 AND 95", name="ck_lead_confidence"),
    )
    op.create_index("ix_leads_customer_email", "leads", ["customer_email"])
    op.create_index("ix_leads_customer_phone", "leads", ["customer_phone"])
    op.create_index("ix_leads_ip_address", "leads", ["ip_address"])
    op.create_index("ix_leads_created_at", "leads", ["created_at"])

    # ─── Supply ──────────────────────────────────────────────────────────────

    op.create_table(
        "contractors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_name", sa.Text, nullable=False),
        sa.Column("owner_name", sa.Text, nullable=True),
        sa.Column("email", sa.Text, nullable=False),
        sa.Column("phone", sa.Text, nullable=False),
        sa.Column("specializations", sa.JSON, nullable=False),
        sa.Column("max_leads_per_day", sa.Integer, nullable=True),
        sa.Column("max_leads_per_week", sa.Integer, nullable=True),
        sa.Column("current_lead_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_leads_received", sa.Integer, nullable=False, server_default="0"),
        sa.Column("avg_response_time", sa.Integer, nullable=True),
        sa.Column("conversion_rate", sa.Numeric(5, 4), nullable=True),
        sa.Column("customer_rating", sa.Numeric(3, 2), nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="active"),
        sa.Column("is_accepting_leads", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("suspension_reason", sa.Text, nullable=True),
        sa.Column("subscription_tier", sa.Text, nullable=True),
        sa.Column("subscription_status", sa.Text, nullable=False, server_default="inactive"),
        sa.Column("stripe_customer_id", sa.Text, nullable=True),
        sa.Column("stripe_subscription_id", sa.Text, nullable=True),
        sa.Column("stripe_payment_method_id", sa.Text, nullable=True),
        sa.Column("payment_method_last4", sa.Text, nullable=True),
        sa.Column("payment_method_brand", sa.Text, nullable=True),
        sa.Column("credit_balance", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_beta_tester", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("beta_tester_lead_cost", sa.Numeric(10, 2), nullable=True),
        _ts("created_at", default_now=True),
        _ts("updated_at", default_now=True),
        sa.CheckConstraint("status IN ('active','suspended')", name="ck_contractor_status"),
        sa.CheckConstraint(
            "subscription_tier IS NULL OR subscription_tier IN ('starter','pro','elite')",
            name="ck_contractor_tier",
        ),
        sa.CheckConstraint(
            "subscription_status IN ('active','inactive','past_due','cancelled')",
            name="ck_contractor_subscription_status",
        ),
        sa.CheckConstraint("credit_balance >= 0", name="ck_contractor_credit_non_negative"),
        sa.UniqueConstraint("email", name="uq_contractor_email"),
    )
    op.create_index("ix_contractors_stripe_customer", "contractors", ["stripe_customer_id"])

    op.create_table(
        "contractor_service_zips",
        sa.Column(
            "contractor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("contractors.id"),
            primary_key=True,
        ),
        sa.Column("zip_code", sa.Text, primary_key=True),
    )
    op.create_index("ix_contractor_service_zips_zip", "contractor_service_zips", ["zip_code"])

    # ─── Matching ────────────────────────────────────────────────────────────

    op.create_table(
        "lead_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("contractor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contractors.id"), nullable=False),
        _ts("assigned_at", default_now=True),
        _ts("response_deadline", nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="assigned"),
        sa.Column("tracking_number", sa.Text, nullable=True),
        sa.Column("response_time", sa.Integer, nullable=True),
        sa.CheckConstraint(
            "status IN ('assigned','contacted','disputed','credited')",
            name="ck_assignment_status",
        ),
        sa.UniqueConstraint("lead_id", name="uq_assignment_lead"),
    )
    op.create_index(
        "ix_lead_assignments_contractor_assigned", "lead_assignments", ["contractor_id", "assigned_at"]
    )
    op.create_index("ix_lead_assignments_tracking_number", "lead_assignments", ["tracking_number"])

    op.create_table(
        "tracking_numbers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("phone_number", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="available"),
        sa.Column("current_lead_id", postgresql.UUID(as_uuid=True), nullable=True),
        _ts("assigned_at"),
        _ts("expires_at"),
        _ts("created_at", default_now=True),
        sa.CheckConstraint("status IN ('available','assigned')", name="ck_tracking_number_status"),
        sa.CheckConstraint(
            "(status = 'available' AND current_lead_id IS NULL) OR "
            "(status = 'assigned' AND current_lead_id IS NOT NULL AND expires_at IS NOT NULL)",
            name="ck_tracking_number_assignment",
        ),
        sa.UniqueConstraint("phone_number", name="uq_tracking_number_phone"),
    )
    op.create_index("ix_tracking_numbers_status", "tracking_numbers", ["status"])
    op.create_index("ix_tracking_numbers_expires_at", "tracking_numbers", ["expires_at"])

    # ─── Money ───────────────────────────────────────────────────────────────

    op.create_table(
        "billing_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("contractor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contractors.id"), nullable=False),
        sa.Column("amount_owed", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("stripe_payment_id", sa.Text, nullable=True),
        sa.Column("invoice_number", sa.Text, nullable=True),
        _ts("date_incurred", default_now=True),
        _ts("invoiced_at"),
        _ts("paid_at"),
        sa.CheckConstraint(
            "status IN ('pending','paid','failed','invoiced','credited')",
            name="ck_billing_status",
        ),
        sa.UniqueConstraint("lead_id", "contractor_id", name="uq_billing_lead_contractor"),
    )
    op.create_index("ix_billing_records_contractor", "billing_records", ["contractor_id"])

    op.create_table(
        "credit_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("contractor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contractors.id"), nullable=False),
        sa.Column("type", sa.Text, nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("balance_before", sa.Numeric(10, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(10, 2), nullable=False),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id"), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        _ts("expires_at"),
        sa.Column("is_expired", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("related_transaction_id", postgresql.UUID(as_uuid=True), nullable=True),
        _ts("created_at", default_now=True),
        sa.CheckConstraint(
            "type IN ('deposit','deduction','expiration','refund')",
            name="ck_credit_tx_type",
        ),
    )
    op.create_index("ix_credit_transactions_contractor", "credit_transactions", ["contractor_id"])

    op.create_table(
        "disputes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("contractor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contractors.id"), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("evidence", sa.JSON, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("resolution", sa.Text, nullable=True),
        sa.Column("resolution_notes", sa.Text, nullable=True),
        sa.Column("credit_amount", sa.Numeric(10, 2), nullable=True),
        _ts("submitted_at", default_now=True),
        _ts("resolved_at"),
        sa.CheckConstraint("status IN ('pending','approved','denied')", name="ck_dispute_status"),
        sa.CheckConstraint(
            "resolution IS NULL OR resolution IN ('full_credit','partial_credit','denied')",
            name="ck_dispute_resolution",
        ),
    )

    # ─── Telephony ───────────────────────────────────────────────────────────

    op.create_table(
        "call_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("call_sid", sa.Text, nullable=False),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("contractor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contractors.id"), nullable=False),
        sa.Column("call_direction", sa.Text, nullable=False, server_default="contractor_to_customer"),
        sa.Column("tracking_number", sa.Text, nullable=False),
        sa.Column("call_status", sa.Text, nullable=False),
        _ts("call_started_at", default_now=True),
        _ts("call_ended_at"),
        sa.Column("call_duration", sa.Integer, nullable=True),
        sa.Column("recording_url", sa.Text, nullable=True),
        sa.Column("recording_sid", sa.Text, nullable=True),
        sa.UniqueConstraint("call_sid", name="uq_call_log_sid"),
    )
    op.create_index("ix_call_logs_lead", "call_logs", ["lead_id"])


def downgrade() -> None:
    for table in (
        "call_logs",
        "disputes",
        "credit_transactions",
        "billing_records",
        "tracking_numbers",
        "lead_assignments",
        "contractor_service_zips",
        "contractors",
        "leads",
    ):
        op.drop_table(table)
