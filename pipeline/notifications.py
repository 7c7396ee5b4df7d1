"""Contractor notifications over email (SendGrid) and SMS (Twilio).

Every public coroutine here is fire-and-forget from the caller's point of
view: failures are logged and swallowed, and nothing is retried.
"""
import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from config import Settings
from db.models import Contractor, Lead
from schemas.billing import SendResult
from tools.sendgrid_tools import sendgrid_send_email
from tools.twilio_tools import twilio_send_sms

logger = logging.getLogger(__name__)


def format_phone(number: Optional[str]) -> str:
    digits = "".join(ch for ch in (number or "") if ch.isdigit())[-10:]
    if len(digits) != 10:
        return number or ""
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


class Notifier:
    def __init__(self, settings: Settings):
        self.settings = settings

    async def send_email(
        self, to: str, subject: str, html: str, text: Optional[str] = None
    ) -> SendResult:
        if not self.settings.sendgrid_api_key:
            return SendResult(success=False, error="Email sender not configured")
        result = await asyncio.to_thread(
            sendgrid_send_email,
            to,
            subject,
            html,
            text,
            self.settings.sendgrid_from_email,
            self.settings.sendgrid_api_key,
        )
        return SendResult(success=bool(result.get("sent")), error=result.get("error"))

    async def send_sms(self, to: str, body: str) -> SendResult:
        s = self.settings
        if not (s.twilio_account_sid and s.twilio_auth_token and s.twilio_phone_number):
            return SendResult(success=False, error="SMS sender not configured")
        result = await asyncio.to_thread(
            twilio_send_sms,
            to,
            body,
            s.twilio_phone_number,
            s.twilio_account_sid,
            s.twilio_auth_token,
        )
        return SendResult(success=bool(result.get("sid")), error=result.get("error"))

    async def _deliver(self, label: str, coro) -> None:
        try:
            result = await coro
        except Exception:
            logger.exception("Notification %s raised", label)
            return
        if not result.success:
            logger.warning("Notification %s failed: %s", label, result.error)

    async def lead_assigned(
        self,
        contractor: Contractor,
        lead: Lead,
        response_deadline: datetime,
        tracking_number: Optional[str],
    ) -> None:
        call_line = (
            f"Call {format_phone(tracking_number)} to reach the customer."
            if tracking_number
            else "A tracking number will follow shortly."
        )
        deadline = response_deadline.strftime("%Y-%m-%d %H:%M UTC")
        subject = f"New {lead.category} lead: {lead.service_type} in {lead.customer_city}"
        text = (
            f"New {lead.category} lead for {contractor.business_name}.\n"
            f"Service: {lead.service_type}\n"
            f"Timeline: {lead.timeline}\n"
            f"Budget: {lead.budget_range}\n"
            f"Location: {lead.customer_city}, {lead.customer_state} {lead.customer_zip}\n"
            f"{call_line}\n"
            f"Please respond by {deadline}."
        )
        html = "<p>" + text.replace("\n", "<br>") + "</p>"
        await self._deliver("lead_assigned.email", self.send_email(contractor.email, subject, html, text))
        sms = (
            f"New {lead.category} lead: {lead.service_type} in {lead.customer_city}. "
            f"{call_line} Respond by {deadline}."
        )
        await self._deliver("lead_assigned.sms", self.send_sms(contractor.phone, sms))

    async def low_credit(
        self, contractor: Contractor, balance: Decimal, threshold: Decimal
    ) -> None:
        if threshold <= 0:
            subject = "Your lead credit balance is empty"
            body = "Your credit balance has run out. You will not receive new leads until you add credit."
        else:
            subject = f"Your lead credit balance is below ${threshold:.0f}"
            body = f"Your credit balance is now ${balance:.2f}. Add credit to keep receiving leads."
        await self._deliver(
            "low_credit.email",
            self.send_email(contractor.email, subject, f"<p>{body}</p>", body),
        )
        await self._deliver("low_credit.sms", self.send_sms(contractor.phone, body))
