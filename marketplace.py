"""Lead marketplace: composition root and command-line entry point.

Wires the pipeline with explicitly constructed handles (database, payment
gateway, notifier, tracking pool) and exposes one coroutine per inbound
surface. HTTP routing is left to whatever hosts this object; every method
returns plain data or a response model the host can serialise.

Pipeline per submission:
  LeadSubmission -> validate -> score -> persist Lead -> match -> assign
  -> acquire tracking number -> (after commit) notify contractor

Usage:
  # Submit a lead from a JSON file
  python marketplace.py submit --file lead.json

  # Release expired tracking numbers (cron)
  python marketplace.py recycle

  # Expire unused prepaid credit (cron)
  python marketplace.py expire-credits
"""
import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping, Optional
from uuid import UUID

from pydantic import ValidationError

from config import Settings
from db.connection import Database
from db.repositories import contractors as contractors_repo
from db.repositories import leads as leads_repo
from pipeline import scorer
from pipeline.assignment import AssignmentOrchestrator
from pipeline.call_billing import (
    CallBillingStateMachine,
    is_call_setup,
    is_recording_callback,
)
from pipeline.errors import LeadValidationError, WebhookPayloadError
from pipeline.matcher import ContractorMatcher
from pipeline.notifications import Notifier
from pipeline.number_pool import TrackingNumberPool, recycle_expired_numbers, verify_cron_secret
from pipeline.payments import StripePaymentGateway
from pipeline import subscriptions
from pipeline.validator import validate
from schemas.lead import AssignedContractor, LeadSubmission, SubmissionResponse
from schemas.telephony import CallEvent, WebhookResponse
from tools.twilio_tools import empty_twiml, validate_signature

logger = logging.getLogger(__name__)


def _schema_errors(exc: ValidationError) -> list[str]:
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "input"
        errors.append(f"{field}: {err.get('msg', 'invalid value')}")
    return errors


def parse_submission(raw: Mapping[str, Any]) -> LeadSubmission:
    """Parse submitted form fields, raising LeadValidationError on schema errors."""
    try:
        return LeadSubmission.model_validate(dict(raw))
    except ValidationError as exc:
        raise LeadValidationError(_schema_errors(exc)) from exc


def _lead_row(submission: LeadSubmission, phone: str, result, now: datetime) -> dict:
    return {
        "customer_first_name": submission.first_name,
        "customer_last_name": submission.last_name,
        "customer_email": submission.email.lower(),
        "customer_phone": phone,
        "customer_address": submission.address,
        "customer_city": submission.city,
        "customer_state": submission.state.upper(),
        "customer_zip": submission.zip[:5],
        "service_type": submission.service_type,
        "service_description": submission.service_description,
        "timeline": submission.timeline,
        "budget_range": submission.budget_range,
        "property_type": submission.property_type,
        "property_age": submission.property_age,
        "existing_system": submission.existing_system,
        "system_issue": submission.system_issue,
        "preferred_contact_time": submission.preferred_contact_time,
        "preferred_contact_method": submission.preferred_contact_method,
        "referral_source": submission.referral_source,
        "utm_source": submission.utm_source,
        "utm_medium": submission.utm_medium,
        "utm_campaign": submission.utm_campaign,
        "form_completion_time": (
            int(submission.form_completion_time)
            if submission.form_completion_time is not None
            else None
        ),
        "ip_address": submission.ip_address,
        "user_agent": submission.user_agent,
        "score": result.score,
        "category": result.category,
        "price": result.price,
        "confidence_level": result.confidence,
        "quality_flags": result.quality_flags,
        "status": "pending_assignment",
        "created_at": now,
    }


class Marketplace:
    def __init__(
        self,
        settings: Settings,
        database: Database,
        payments: Optional[StripePaymentGateway] = None,
        notifier: Optional[Notifier] = None,
        pool: Optional[TrackingNumberPool] = None,
    ):
        self.settings = settings
        self.db = database
        self.payments = payments or StripePaymentGateway(settings.stripe_secret_key)
        self.notifier = notifier or Notifier(settings)
        self.pool = pool or TrackingNumberPool(
            ttl_days=settings.tracking_number_ttl_days,
            low_pool_threshold=settings.low_pool_threshold,
        )
        self.matcher = ContractorMatcher(settings)
        self.orchestrator = AssignmentOrchestrator(settings, self.matcher, self.pool)
        self.billing = CallBillingStateMachine(settings, self.pool, self.payments)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Marketplace":
        database = Database.from_url(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
        )
        return cls(settings, database)

    async def close(self) -> None:
        await self.db.dispose()

    # ------------------------------------------------------------------
    # Lead submission
    # ------------------------------------------------------------------

    async def submit_lead(
        self, raw: Mapping[str, Any], now: Optional[datetime] = None
    ) -> SubmissionResponse:
        """Validate, score, persist and assign one submitted lead."""
        now = now or datetime.now(timezone.utc)
        try:
            submission = parse_submission(raw)
        except LeadValidationError as exc:
            return SubmissionResponse(success=False, status="rejected", errors=exc.errors)

        async with self.db.session() as session:
            validation = await validate(session, submission, now=now)
            if not validation.valid:
                return SubmissionResponse(
                    success=False, status="rejected", errors=validation.errors
                )

            result = scorer.score(submission, validation.quality_flags)
            lead = await leads_repo.create(
                session, _lead_row(submission, validation.normalized_phone, result, now)
            )
            logger.info(
                "Lead %s scored %d (%s, $%s, confidence %d%%)",
                lead.id,
                result.score,
                result.category,
                result.price,
                result.confidence,
                extra={"stage": "scored", "lead_id": str(lead.id), "category": result.category},
            )
            outcome = await self.orchestrator.assign(session, lead, now=now)

        response = SubmissionResponse(
            success=True,
            status=outcome.status,
            lead_id=lead.id,
            category=result.category,
            score=result.score,
        )
        if outcome.assigned:
            response.contractor = AssignedContractor(
                contractor_id=outcome.contractor.id,
                business_name=outcome.contractor.business_name,
                phone=outcome.contractor.phone,
                response_deadline=outcome.response_deadline,
                tracking_number=outcome.tracking_number,
            )
            await self.notifier.lead_assigned(
                outcome.contractor, lead, outcome.response_deadline, outcome.tracking_number
            )
        elif outcome.no_contractor is not None:
            response.warning = outcome.no_contractor.reason
        return response

    # ------------------------------------------------------------------
    # Telephony
    # ------------------------------------------------------------------

    async def handle_call_webhook(
        self,
        params: Mapping[str, Any],
        url: str,
        signature: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> WebhookResponse:
        """Handle a Twilio voice webhook (call setup, status or recording callback)."""
        params = {key: str(value) for key, value in params.items()}
        token = self.settings.twilio_auth_token
        if token and not validate_signature(token, url, params, signature):
            logger.warning("Rejected telephony webhook with a bad signature")
            return WebhookResponse(status_code=403, content_type="text/plain", body="Invalid signature")

        outcome = None
        try:
            try:
                event = CallEvent.model_validate(params)
            except ValidationError as exc:
                raise WebhookPayloadError(f"Malformed call webhook: {exc.error_count()} error(s)") from exc

            async with self.db.session() as session:
                if is_recording_callback(event):
                    await self.billing.record_recording(session, event)
                    response = WebhookResponse(body=empty_twiml())
                elif is_call_setup(event):
                    twiml = await self.billing.authorize_call(session, event)
                    response = WebhookResponse(body=twiml)
                else:
                    outcome = await self.billing.process_status(session, event, now=now)
                    response = WebhookResponse(
                        content_type="application/json",
                        body=outcome.model_dump_json(),
                    )
        except WebhookPayloadError as exc:
            logger.error("Telephony webhook rejected: %s", exc)
            return WebhookResponse(status_code=500, content_type="text/plain", body=str(exc))
        except Exception:
            logger.exception("Telephony webhook failed")
            return WebhookResponse(status_code=500, content_type="text/plain", body="Internal error")

        if outcome is not None and outcome.low_credit_threshold is not None:
            await self._warn_low_credit(outcome.contractor_id, outcome.credit_balance, outcome.low_credit_threshold)
        return response

    async def _warn_low_credit(self, contractor_id, balance: Decimal, threshold: Decimal) -> None:
        try:
            async with self.db.session() as session:
                contractor = await contractors_repo.get(session, contractor_id)
        except Exception:
            logger.exception("Could not load contractor %s for low-credit warning", contractor_id)
            return
        if contractor is not None:
            await self.notifier.low_credit(contractor, balance, threshold)

    # ------------------------------------------------------------------
    # Cron jobs
    # ------------------------------------------------------------------

    async def recycle_numbers(
        self, secret: Optional[str], now: Optional[datetime] = None
    ) -> dict[str, Any]:
        """Cron entry: raises CronAuthError on a bad secret."""
        verify_cron_secret(self.settings.cron_secret, secret)
        async with self.db.session() as session:
            result = await recycle_expired_numbers(session, self.pool, now=now)
        return result.model_dump()

    async def expire_credits(self, now: Optional[datetime] = None) -> dict[str, Any]:
        async with self.db.session() as session:
            return await subscriptions.expire_credits(session, self.settings, now=now)

    # ------------------------------------------------------------------
    # Disputes, subscriptions, admin
    # ------------------------------------------------------------------

    async def open_dispute(
        self,
        lead_id: UUID,
        contractor_id: UUID,
        reason: str,
        description: Optional[str] = None,
        evidence: Optional[dict] = None,
    ) -> UUID:
        async with self.db.session() as session:
            dispute = await self.billing.open_dispute(
                session, lead_id, contractor_id, reason, description=description, evidence=evidence
            )
            return dispute.id

    async def resolve_dispute(
        self,
        dispute_id: UUID,
        resolution: str,
        notes: Optional[str] = None,
        credit_amount: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        async with self.db.session() as session:
            return await self.billing.resolve_dispute(
                session, dispute_id, resolution, notes=notes, credit_amount=credit_amount, now=now
            )

    async def apply_stripe_event(self, event: dict) -> dict[str, Any]:
        async with self.db.session() as session:
            return await subscriptions.apply_stripe_event(session, self.settings, event)

    async def deposit_credit(
        self, contractor_id: UUID, amount: Decimal, description: Optional[str] = None
    ) -> UUID:
        async with self.db.session() as session:
            tx = await subscriptions.deposit_credit(
                session, self.settings, contractor_id, amount, description=description
            )
            return tx.id

    async def contractor_eligibility(
        self, contractor_id: UUID, now: Optional[datetime] = None
    ) -> Optional[dict[str, Any]]:
        """Whether a contractor can receive leads right now, and why not. None if unknown."""
        async with self.db.session() as session:
            contractor = await contractors_repo.get(session, contractor_id)
            if contractor is None:
                return None
            verdict = await subscriptions.can_receive_leads(session, self.settings, contractor, now=now)
        return {
            "eligible": verdict.eligible,
            "reason": verdict.reason,
            "lead_cost": str(verdict.lead_cost),
            "monthly_cap": verdict.monthly_cap,
            "leads_this_month": verdict.leads_this_month,
        }

    async def suspend_contractor(self, contractor_id: UUID, reason: str) -> bool:
        async with self.db.session() as session:
            return await subscriptions.suspend_contractor(session, contractor_id, reason) is not None

    async def reactivate_contractor(self, contractor_id: UUID) -> bool:
        async with self.db.session() as session:
            contractor = await subscriptions.reactivate_contractor(
                session, self.settings, contractor_id
            )
            return contractor is not None


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


async def _run(command: str, args: argparse.Namespace) -> dict:
    marketplace = Marketplace.from_settings(Settings.from_env())
    try:
        if command == "submit":
            raw = json.loads(Path(args.file).read_text())
            response = await marketplace.submit_lead(raw)
            return response.model_dump(mode="json")
        if command == "recycle":
            return await marketplace.recycle_numbers(marketplace.settings.cron_secret)
        if command == "expire-credits":
            return await marketplace.expire_credits()
        raise ValueError(f"Unknown command: {command}")
    finally:
        await marketplace.close()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lead marketplace pipeline")
    sub = parser.add_subparsers(dest="command")

    submit = sub.add_parser("submit", help="Validate, score and assign a lead")
    submit.add_argument("--file", required=True, help="JSON file with the submitted form fields")

    sub.add_parser("recycle", help="Release expired tracking numbers")
    sub.add_parser("expire-credits", help="Expire unused prepaid credit")
    return parser


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = _build_arg_parser()
    args = parser.parse_args()

    if args.command in ("submit", "recycle", "expire-credits"):
        print(json.dumps(asyncio.run(_run(args.command, args)), indent=2, default=str))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
