"""Contractor subscription state, lead eligibility and the prepaid credit ledger.

Eligibility is the authoritative "can this contractor receive a lead right
now" check: account state, subscription, payment method, credit and the
monthly cap of the subscription tier. Beta testers skip the subscription,
payment-method and customer checks and pay their own per-lead price.

Credit moves only through conditional updates in db.repositories.contractors
and every movement is written to the credit_transactions ledger.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from db.models import Contractor, CreditTransaction
from db.repositories import assignments as assignments_repo
from db.repositories import contractors as contractors_repo
from db.repositories import credits as credits_repo
from pipeline import policy
from pipeline.clock import start_of_month

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: Optional[str]
    lead_cost: Decimal
    monthly_cap: Optional[int]
    leads_this_month: int = 0


# ---------------------------------------------------------------------------
# Pricing and eligibility
# ---------------------------------------------------------------------------


def lead_cost_for(settings: Settings, contractor: Contractor) -> Decimal:
    if contractor.is_beta_tester and contractor.beta_tester_lead_cost is not None:
        return Decimal(contractor.beta_tester_lead_cost)
    return policy.tier_lead_cost(settings, contractor.subscription_tier)


def monthly_cap_for(settings: Settings, contractor: Contractor) -> Optional[int]:
    if contractor.is_beta_tester and contractor.subscription_tier is None:
        return None
    return policy.tier_monthly_cap(settings, contractor.subscription_tier)


def check_eligibility(
    settings: Settings, contractor: Contractor, leads_this_month: int
) -> Eligibility:
    """Pure eligibility decision. The first failing rule is the reason."""
    cost = lead_cost_for(settings, contractor)
    cap = monthly_cap_for(settings, contractor)
    beta = contractor.is_beta_tester

    def _no(reason: str) -> Eligibility:
        return Eligibility(False, reason, cost, cap, leads_this_month)

    if contractor.status != "active":
        return _no(f"Account is {contractor.status}")
    if not contractor.is_verified:
        return _no("Account is not verified")
    if not contractor.is_accepting_leads:
        return _no("Not accepting leads")
    if not beta and contractor.subscription_status != "active":
        return _no(f"Subscription is {contractor.subscription_status}")
    if not beta and not contractor.has_payment_method:
        return _no("No payment method on file")
    if not beta and not contractor.stripe_customer_id:
        return _no("No billing customer on file")
    balance = Decimal(contractor.credit_balance or 0)
    if balance < cost:
        return _no(f"Insufficient credit balance (${balance:.2f} < ${cost:.2f})")
    if cap is not None and leads_this_month >= cap:
        return _no(f"Monthly lead cap reached ({leads_this_month}/{cap})")
    return Eligibility(True, None, cost, cap, leads_this_month)


async def can_receive_leads(
    session: AsyncSession,
    settings: Settings,
    contractor: Contractor,
    now: Optional[datetime] = None,
) -> Eligibility:
    now = now or datetime.now(timezone.utc)
    this_month = await assignments_repo.count_since(session, contractor.id, start_of_month(now))
    return check_eligibility(settings, contractor, this_month)


# ---------------------------------------------------------------------------
# Credit ledger
# ---------------------------------------------------------------------------


def low_credit_threshold_crossed(before: Decimal, after: Decimal) -> Optional[Decimal]:
    """The most severe warning threshold passed by a debit, if any."""
    crossed = [t for t in policy.LOW_CREDIT_THRESHOLDS if before > t >= after]
    return min(crossed) if crossed else None


async def deposit_credit(
    session: AsyncSession,
    settings: Settings,
    contractor_id: UUID,
    amount: Decimal,
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CreditTransaction:
    """Add prepaid credit that expires after settings.credit_expiry_days."""
    if amount <= 0:
        raise ValueError("Deposit amount must be positive")
    now = now or datetime.now(timezone.utc)
    after = await contractors_repo.add_credit(session, contractor_id, amount)
    tx = await credits_repo.record(
        session,
        contractor_id=contractor_id,
        type="deposit",
        amount=amount,
        balance_before=after - amount,
        balance_after=after,
        description=description or "Credit deposit",
        expires_at=now + timedelta(days=settings.credit_expiry_days),
    )
    contractor = await contractors_repo.get(session, contractor_id)
    if contractor is not None and contractor.status == "active" and after >= settings.minimum_credit_balance:
        await contractors_repo.update_fields(session, contractor_id, is_accepting_leads=True)
    logger.info("Deposited $%s for contractor %s (balance $%s)", amount, contractor_id, after)
    return tx


async def deduct_for_lead(
    session: AsyncSession,
    settings: Settings,
    contractor_id: UUID,
    amount: Decimal,
    lead_id: UUID,
    description: str,
) -> Optional[Decimal]:
    """Pay for a lead from credit. Returns the new balance, or None if short."""
    after = await contractors_repo.debit_credit(session, contractor_id, amount)
    if after is None:
        return None
    await credits_repo.record(
        session,
        contractor_id=contractor_id,
        type="deduction",
        amount=amount,
        balance_before=after + amount,
        balance_after=after,
        lead_id=lead_id,
        description=description,
    )
    await contractors_repo.update_fields(
        session,
        contractor_id,
        is_accepting_leads=after >= settings.minimum_credit_balance,
    )
    return after


async def refund_credit(
    session: AsyncSession,
    contractor_id: UUID,
    amount: Decimal,
    lead_id: Optional[UUID],
    description: str,
) -> CreditTransaction:
    after = await contractors_repo.add_credit(session, contractor_id, amount)
    return await credits_repo.record(
        session,
        contractor_id=contractor_id,
        type="refund",
        amount=amount,
        balance_before=after - amount,
        balance_after=after,
        lead_id=lead_id,
        description=description,
    )


async def expire_credits(
    session: AsyncSession, settings: Settings, now: Optional[datetime] = None
) -> dict[str, Any]:
    """Expire unused value of deposits past their expiry date.

    A deposit can only take back what is still on the balance, so the amount
    expired is min(deposit, current balance).
    """
    now = now or datetime.now(timezone.utc)
    deposits = await credits_repo.list_expired_deposits(session, now)
    total = Decimal("0")
    affected: set[UUID] = set()

    for deposit in deposits:
        if not await credits_repo.mark_expired(session, deposit.id):
            continue
        contractor = await contractors_repo.get_for_update(session, deposit.contractor_id)
        if contractor is None:
            continue
        balance = Decimal(contractor.credit_balance)
        to_expire = min(Decimal(deposit.amount), balance)
        if to_expire <= 0:
            continue

        after = await contractors_repo.debit_credit(session, contractor.id, to_expire)
        if after is None:
            continue
        await credits_repo.record(
            session,
            contractor_id=contractor.id,
            type="expiration",
            amount=to_expire,
            balance_before=after + to_expire,
            balance_after=after,
            description=f"Credit expired ({settings.credit_expiry_days} days)",
            related_transaction_id=deposit.id,
        )
        await contractors_repo.update_fields(
            session,
            contractor.id,
            is_accepting_leads=after >= settings.minimum_credit_balance,
        )
        total += to_expire
        affected.add(contractor.id)

    logger.info(
        "Credit expiration sweep: %d deposit(s) due, $%s expired across %d contractor(s)",
        len(deposits),
        total,
        len(affected),
    )
    return {
        "deposits_processed": len(deposits),
        "amount_expired": str(total),
        "contractors_affected": len(affected),
    }


# ---------------------------------------------------------------------------
# Subscription webhooks and admin actions
# ---------------------------------------------------------------------------

_SUBSCRIPTION_STATUS = {
    "active": "active",
    "trialing": "active",
    "past_due": "past_due",
    "canceled": "cancelled",
    "cancelled": "cancelled",
}


def tier_for_price(settings: Settings, price_id: Optional[str]) -> Optional[str]:
    prices = {
        settings.stripe_price_starter: "starter",
        settings.stripe_price_pro: "pro",
        settings.stripe_price_elite: "elite",
    }
    prices.pop(None, None)
    return prices.get(price_id)


def _first_price_id(subscription: dict) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


async def apply_stripe_event(
    session: AsyncSession, settings: Settings, event: dict
) -> dict[str, Any]:
    """Apply a Stripe subscription / payment-method event to contractor state.

    Returns {"handled": bool, ...}. Unknown event types and unknown customers
    are acknowledged but ignored.
    """
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    customer_id = obj.get("customer")
    if not customer_id:
        return {"handled": False, "event_type": event_type, "reason": "no customer"}

    contractor = await contractors_repo.get_by_stripe_customer(session, customer_id)
    if contractor is None:
        logger.warning("Stripe event %s for unknown customer %s", event_type, customer_id)
        return {"handled": False, "event_type": event_type, "reason": "unknown customer"}

    balance = Decimal(contractor.credit_balance or 0)

    if event_type in ("customer.subscription.created", "customer.subscription.updated"):
        status = _SUBSCRIPTION_STATUS.get(obj.get("status", ""), "inactive")
        values: dict[str, Any] = {
            "subscription_status": status,
            "stripe_subscription_id": obj.get("id"),
            "is_accepting_leads": (
                status == "active"
                and contractor.status == "active"
                and balance >= settings.minimum_credit_balance
            ),
        }
        tier = tier_for_price(settings, _first_price_id(obj))
        if tier:
            values["subscription_tier"] = tier
        await contractors_repo.update_fields(session, contractor.id, **values)

    elif event_type == "customer.subscription.deleted":
        await contractors_repo.update_fields(
            session,
            contractor.id,
            subscription_status="cancelled",
            is_accepting_leads=False,
        )

    elif event_type == "payment_method.attached":
        if contractor.stripe_payment_method_id:
            return {"handled": True, "event_type": event_type, "changed": False}
        card = obj.get("card") or {}
        await contractors_repo.update_fields(
            session,
            contractor.id,
            stripe_payment_method_id=obj.get("id"),
            payment_method_last4=card.get("last4"),
            payment_method_brand=card.get("brand"),
        )

    else:
        return {"handled": False, "event_type": event_type, "reason": "ignored event type"}

    logger.info("Applied %s to contractor %s", event_type, contractor.id)
    return {"handled": True, "event_type": event_type, "contractor_id": str(contractor.id)}


async def suspend_contractor(
    session: AsyncSession, contractor_id: UUID, reason: str
) -> Optional[Contractor]:
    contractor = await contractors_repo.update_fields(
        session,
        contractor_id,
        status="suspended",
        is_accepting_leads=False,
        suspension_reason=reason,
    )
    if contractor is not None:
        logger.warning("Suspended contractor %s: %s", contractor_id, reason)
    return contractor


async def reactivate_contractor(
    session: AsyncSession, settings: Settings, contractor_id: UUID
) -> Optional[Contractor]:
    contractor = await contractors_repo.get(session, contractor_id)
    if contractor is None:
        return None
    accepting = contractor.is_beta_tester or (
        Decimal(contractor.credit_balance or 0) >= settings.minimum_credit_balance
    )
    contractor = await contractors_repo.update_fields(
        session,
        contractor_id,
        status="active",
        suspension_reason=None,
        is_accepting_leads=accepting,
    )
    logger.info("Reactivated contractor %s (accepting=%s)", contractor_id, accepting)
    return contractor
