"""Credit ledger repository."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import CreditTransaction

logger = logging.getLogger(__name__)


async def record(
    session: AsyncSession,
    contractor_id: UUID,
    type: str,
    amount: Decimal,
    balance_before: Decimal,
    balance_after: Decimal,
    lead_id: Optional[UUID] = None,
    description: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    related_transaction_id: Optional[UUID] = None,
) -> CreditTransaction:
    """Append one ledger row. Amounts are always positive; `type` gives the sign."""
    tx = CreditTransaction(
        contractor_id=contractor_id,
        type=type,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        lead_id=lead_id,
        description=description,
        expires_at=expires_at,
        related_transaction_id=related_transaction_id,
    )
    session.add(tx)
    await session.flush()
    return tx


async def list_for_contractor(session: AsyncSession, contractor_id: UUID) -> list[CreditTransaction]:
    result = await session.execute(
        select(CreditTransaction)
        .where(CreditTransaction.contractor_id == contractor_id)
        .order_by(CreditTransaction.created_at)
    )
    return list(result.scalars().all())


async def list_expired_deposits(session: AsyncSession, now: datetime) -> list[CreditTransaction]:
    """Deposits past their expiry that have not been expired yet."""
    result = await session.execute(
        select(CreditTransaction)
        .where(CreditTransaction.type == "deposit")
        .where(CreditTransaction.is_expired == False)
        .where(CreditTransaction.expires_at.is_not(None))
        .where(CreditTransaction.expires_at <= now)
        .order_by(CreditTransaction.expires_at)
    )
    return list(result.scalars().all())


async def mark_expired(session: AsyncSession, transaction_id: UUID) -> bool:
    """Flag a deposit as expired; False if another sweep already did."""
    result = await session.execute(
        update(CreditTransaction)
        .where(CreditTransaction.id == transaction_id)
        .where(CreditTransaction.is_expired == False)
        .values(is_expired=True)
    )
    await session.flush()
    return result.rowcount == 1
