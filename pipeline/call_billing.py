"""Call-billing state machine: telephony events in, one charge per lead out.

Per tracking number and lead:

    ringing -> authorized | rejected -> completed -> billed | too short -> released

Call setup events (no status, ringing, in-progress) authorise the caller and
produce TwiML. Status callbacks are logged, and a completed call longer than
the qualifying threshold is billed exactly once: the (lead, contractor)
billing record is looked up first and inserted with ON CONFLICT DO NOTHING,
so a duplicate delivery only releases the number. A call SID stays bound to
the lead and number it was first logged against.

Dispute resolution lives here too because it undoes billing.
"""
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from db.models import BillingRecord, Contractor, Dispute, Lead, LeadAssignment
from db.repositories import assignments as assignments_repo
from db.repositories import billing as billing_repo
from db.repositories import calls as calls_repo
from db.repositories import contractors as contractors_repo
from db.repositories import disputes as disputes_repo
from db.repositories import leads as leads_repo
from db.repositories import tracking_numbers as numbers_repo
from pipeline import policy
from pipeline.errors import WebhookPayloadError
from pipeline.number_pool import TrackingNumberPool
from pipeline.payments import StripePaymentGateway
from pipeline.subscriptions import deduct_for_lead, low_credit_threshold_crossed, refund_credit
from schemas.billing import BillingOutcome
from schemas.telephony import CallEvent
from tools.twilio_tools import forward_call_twiml, reject_call_twiml

logger = logging.getLogger(__name__)

NOT_ASSIGNED_MESSAGE = "This tracking number is not currently assigned."
WRONG_CALLER_MESSAGE = "This number is assigned to a different contractor."
PAID_FROM_CREDIT_NOTE = "Paid from credit balance"


def last_ten_digits(number: Optional[str]) -> str:
    return re.sub(r"\D", "", number or "")[-10:]


def append_note(existing: Optional[str], note: str) -> str:
    return f"{existing}\n{note}" if existing else note


def is_call_setup(event: CallEvent) -> bool:
    return event.call_status in policy.CALL_SETUP_STATUSES


def is_recording_callback(event: CallEvent) -> bool:
    return bool(event.recording_sid or event.recording_url) and not event.call_status and not event.to


class CallBillingStateMachine:
    def __init__(
        self,
        settings: Settings,
        pool: TrackingNumberPool,
        payments: StripePaymentGateway,
    ):
        self.settings = settings
        self.pool = pool
        self.payments = payments

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _active_assignment(
        self, session: AsyncSession, tracking_number: str
    ) -> Optional[LeadAssignment]:
        """The assignment currently holding this number, if it is held."""
        entry = await numbers_repo.get_by_number(session, tracking_number)
        if entry is None or entry.status != "assigned" or entry.current_lead_id is None:
            return None
        return await assignments_repo.get_by_lead(session, entry.current_lead_id)

    async def _billing_assignment(
        self, session: AsyncSession, event: CallEvent
    ) -> tuple[Optional[LeadAssignment], str]:
        """The assignment a status callback belongs to, and the number it used.

        A call SID seen before stays bound to the lead it was first logged
        against, even if its number has since been released and claimed for
        another lead. An unseen SID goes to the number's active holder, else
        the last lead that held the number.
        """
        known = await calls_repo.get_by_sid(session, event.call_sid)
        if known is not None:
            return await assignments_repo.get_by_lead(session, known.lead_id), known.tracking_number

        assignment = await self._active_assignment(session, event.to)
        if assignment is None:
            assignment = await assignments_repo.get_latest_by_tracking_number(session, event.to)
        return assignment, event.to

    # ------------------------------------------------------------------
    # Call setup
    # ------------------------------------------------------------------

    async def authorize_call(self, session: AsyncSession, event: CallEvent) -> str:
        """Return TwiML that either forwards the call to the customer or declines it."""
        if not event.to:
            raise WebhookPayloadError("Call setup without a dialed number")

        assignment = await self._active_assignment(session, event.to)
        if assignment is None:
            logger.warning("Call to unassigned tracking number %s", event.to)
            return reject_call_twiml(NOT_ASSIGNED_MESSAGE)

        contractor = await contractors_repo.get(session, assignment.contractor_id)
        lead = await leads_repo.get(session, assignment.lead_id)
        if contractor is None or lead is None:
            logger.warning("Assignment %s has no contractor or lead", assignment.id)
            return reject_call_twiml(NOT_ASSIGNED_MESSAGE)

        if last_ten_digits(event.from_) != last_ten_digits(contractor.phone):
            logger.warning(
                "Rejected call to %s from %s: not the assigned contractor",
                event.to,
                event.from_,
                extra={"alert": "unauthorized_caller", "lead_id": str(lead.id)},
            )
            return reject_call_twiml(WRONG_CALLER_MESSAGE)

        logger.info("Forwarding call %s for lead %s", event.call_sid, lead.id)
        return forward_call_twiml(lead.customer_phone, self.settings.call_webhook_url)

    # ------------------------------------------------------------------
    # Status callbacks
    # ------------------------------------------------------------------

    async def record_recording(self, session: AsyncSession, event: CallEvent) -> bool:
        attached = await calls_repo.attach_recording(
            session, event.call_sid, event.recording_url, event.recording_sid
        )
        if not attached:
            logger.info("Recording for unknown call %s ignored", event.call_sid)
        return attached

    async def process_status(
        self, session: AsyncSession, event: CallEvent, now: Optional[datetime] = None
    ) -> BillingOutcome:
        now = now or datetime.now(timezone.utc)
        if not event.to:
            raise WebhookPayloadError("Status callback without a dialed number")

        assignment, tracking_number = await self._billing_assignment(session, event)
        if assignment is None:
            logger.info("No assignment for %s; status %s ignored", event.to, event.call_status)
            return BillingOutcome(action="no_assignment")

        contractor = await contractors_repo.get(session, assignment.contractor_id)
        if contractor is None or last_ten_digits(event.from_) != last_ten_digits(contractor.phone):
            logger.warning(
                "Ignored status %s for call %s from %s: not the assigned contractor",
                event.call_status,
                event.call_sid,
                event.from_,
                extra={"alert": "unauthorized_caller", "lead_id": str(assignment.lead_id)},
            )
            return BillingOutcome(action="rejected_caller", contractor_id=assignment.contractor_id)

        duration = event.duration_seconds
        completed = event.call_status == "completed"
        await calls_repo.upsert(
            session,
            {
                "call_sid": event.call_sid,
                "lead_id": assignment.lead_id,
                "contractor_id": assignment.contractor_id,
                "tracking_number": tracking_number,
                "call_status": event.call_status,
                "call_started_at": now,
                "call_ended_at": now if completed else None,
                "call_duration": duration,
                "recording_url": event.recording_url,
                "recording_sid": event.recording_sid,
            },
        )

        if not completed:
            logger.info("Call %s status %s logged", event.call_sid, event.call_status)
            return BillingOutcome(action="not_completed", contractor_id=assignment.contractor_id)

        if duration is None or duration <= policy.QUALIFYING_CALL_SECONDS:
            logger.info(
                "Call %s too short to bill (%s s); number kept", event.call_sid, duration
            )
            return BillingOutcome(action="too_short", contractor_id=assignment.contractor_id)

        return await self._bill(session, assignment, tracking_number, now)

    async def _bill(
        self,
        session: AsyncSession,
        assignment: LeadAssignment,
        tracking_number: str,
        now: datetime,
    ) -> BillingOutcome:
        lead = await leads_repo.get(session, assignment.lead_id)
        contractor = await contractors_repo.get(session, assignment.contractor_id)
        if lead is None or contractor is None:
            raise WebhookPayloadError(f"Assignment {assignment.id} is missing its lead or contractor")

        existing = await billing_repo.get_for_pair(session, lead.id, contractor.id)
        record = None
        if existing is None:
            record = await billing_repo.create_if_absent(
                session, lead.id, contractor.id, amount_owed=Decimal(lead.price)
            )
        if record is None:
            released = await self.pool.release(session, tracking_number, lead_id=lead.id)
            logger.info("Lead %s already billed to %s; skipping", lead.id, contractor.id)
            return BillingOutcome(
                action="duplicate",
                billing_record_id=existing.id if existing else None,
                billing_status=existing.status if existing else None,
                contractor_id=contractor.id,
                number_released=released,
            )

        outcome = await self._settle(session, record, lead, contractor, now)

        await leads_repo.transition_status(
            session, lead.id, "contacted", ["assigned"], first_contact_at=now
        )
        await assignments_repo.transition_status(session, assignment.id, "contacted", ["assigned"])
        outcome.number_released = await self.pool.release(session, tracking_number, lead_id=lead.id)

        logger.info(
            "Billed lead %s to contractor %s: %s $%s",
            lead.id,
            contractor.id,
            outcome.billing_status,
            outcome.amount,
            extra={
                "stage": "billing",
                "lead_id": str(lead.id),
                "contractor_id": str(contractor.id),
                "billing_status": outcome.billing_status,
            },
        )
        return outcome

    async def _settle(
        self,
        session: AsyncSession,
        record: BillingRecord,
        lead: Lead,
        contractor: Contractor,
        now: datetime,
    ) -> BillingOutcome:
        """Pay from prepaid credit when it covers the price, else charge the card."""
        amount = Decimal(record.amount_owed)
        description = (
            f"{lead.category} lead - {lead.service_type} in "
            f"{lead.customer_city}, {lead.customer_state}"
        )
        before = Decimal(contractor.credit_balance or 0)

        if before >= amount:
            after = await deduct_for_lead(
                session,
                self.settings,
                contractor.id,
                amount,
                lead.id,
                f"Lead charge: {lead.customer_name}",
            )
            if after is not None:
                record = await billing_repo.update_record(
                    session,
                    record.id,
                    status="paid",
                    paid_at=now,
                    notes=append_note(record.notes, PAID_FROM_CREDIT_NOTE),
                )
                return BillingOutcome(
                    action="billed",
                    billing_record_id=record.id,
                    billing_status=record.status,
                    amount=amount,
                    paid_from_credit=True,
                    contractor_id=contractor.id,
                    credit_balance=after,
                    low_credit_threshold=low_credit_threshold_crossed(before, after),
                )

        charge = await self.payments.charge(
            contractor.stripe_customer_id,
            contractor.stripe_payment_method_id,
            amount,
            description,
            metadata={
                "lead_id": str(lead.id),
                "contractor_id": str(contractor.id),
                "billing_record_id": str(record.id),
            },
        )
        if charge.success:
            record = await billing_repo.update_record(
                session,
                record.id,
                status="paid",
                paid_at=now,
                stripe_payment_id=charge.charge_id,
            )
        else:
            logger.warning(
                "Payment failed for lead %s / contractor %s: %s",
                lead.id,
                contractor.id,
                charge.error_message,
                extra={"alert": "payment_failed", "lead_id": str(lead.id)},
            )
            record = await billing_repo.update_record(
                session,
                record.id,
                status="failed",
                stripe_payment_id=charge.charge_id,
                notes=append_note(record.notes, f"Payment failed: {charge.error_message}"),
            )
        return BillingOutcome(
            action="billed",
            billing_record_id=record.id,
            billing_status=record.status,
            amount=amount,
            contractor_id=contractor.id,
        )

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def open_dispute(
        self,
        session: AsyncSession,
        lead_id: UUID,
        contractor_id: UUID,
        reason: str,
        description: Optional[str] = None,
        evidence: Optional[dict] = None,
    ) -> Dispute:
        assignment = await assignments_repo.get_by_lead(session, lead_id)
        if assignment is None or assignment.contractor_id != contractor_id:
            raise ValueError(f"Lead {lead_id} is not assigned to contractor {contractor_id}")
        dispute = await disputes_repo.create(
            session, lead_id, contractor_id, reason, description=description, evidence=evidence
        )
        await assignments_repo.transition_status(
            session, assignment.id, "disputed", ["assigned", "contacted"]
        )
        logger.info("Dispute %s opened for lead %s", dispute.id, lead_id)
        return dispute

    async def resolve_dispute(
        self,
        session: AsyncSession,
        dispute_id: UUID,
        resolution: str,
        notes: Optional[str] = None,
        credit_amount: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Close a dispute as full_credit, partial_credit or denied."""
        if resolution not in ("full_credit", "partial_credit", "denied"):
            raise ValueError(f"Unknown dispute resolution: {resolution}")
        if resolution == "partial_credit" and (credit_amount is None or credit_amount <= 0):
            raise ValueError("partial_credit needs a positive credit_amount")
        now = now or datetime.now(timezone.utc)

        dispute = await disputes_repo.get(session, dispute_id)
        if dispute is None:
            raise ValueError(f"Dispute {dispute_id} not found")
        if dispute.status != "pending":
            return {"dispute_id": str(dispute_id), "changed": False, "status": dispute.status}

        assignment = await assignments_repo.get_by_lead(session, dispute.lead_id)
        record = await billing_repo.get_for_pair(session, dispute.lead_id, dispute.contractor_id)

        if resolution == "denied":
            await disputes_repo.resolve(
                session, dispute.id, "denied", "denied", now, resolution_notes=notes
            )
            if assignment is not None:
                await assignments_repo.transition_status(
                    session,
                    assignment.id,
                    "contacted" if record is not None else "assigned",
                    ["disputed"],
                )
            logger.info("Dispute %s denied", dispute.id)
            return {"dispute_id": str(dispute.id), "changed": True, "status": "denied"}

        credited = await self._credit_billing(session, record, resolution, notes or dispute.reason, credit_amount)
        await disputes_repo.resolve(
            session,
            dispute.id,
            "approved",
            resolution,
            now,
            resolution_notes=notes,
            credit_amount=credited,
        )

        released = False
        if assignment is not None:
            await assignments_repo.transition_status(
                session, assignment.id, "credited", ["assigned", "contacted", "disputed"]
            )
            if assignment.tracking_number:
                released = await self.pool.release(
                    session, assignment.tracking_number, lead_id=dispute.lead_id
                )

        logger.info("Dispute %s approved (%s, $%s)", dispute.id, resolution, credited)
        return {
            "dispute_id": str(dispute.id),
            "changed": True,
            "status": "approved",
            "resolution": resolution,
            "credit_amount": str(credited) if credited is not None else None,
            "number_released": released,
        }

    async def _credit_billing(
        self,
        session: AsyncSession,
        record: Optional[BillingRecord],
        resolution: str,
        reason: str,
        credit_amount: Optional[Decimal],
    ) -> Optional[Decimal]:
        if record is None:
            return None
        owed = Decimal(record.amount_owed)
        paid_from_credit = record.status == "paid" and PAID_FROM_CREDIT_NOTE in (record.notes or "")

        if resolution == "full_credit":
            credit = owed
            await billing_repo.update_record(
                session,
                record.id,
                status="credited",
                notes=append_note(record.notes, f"Dispute approved: {reason}"),
            )
        else:
            credit = min(Decimal(credit_amount), owed)
            await billing_repo.update_record(
                session,
                record.id,
                amount_owed=owed - credit,
                notes=append_note(
                    record.notes, f"Dispute approved (partial credit ${credit:.2f}): {reason}"
                ),
            )

        if paid_from_credit and credit > 0:
            await refund_credit(
                session,
                record.contractor_id,
                credit,
                record.lead_id,
                f"Dispute credit for lead {record.lead_id}",
            )
        return credit
