"""Lead repository: persistence, duplicate lookups and status transitions."""
import logging
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Lead

logger = logging.getLogger(__name__)


async def create(session: AsyncSession, data: dict) -> Lead:
    """Insert a scored lead.

    data dict keys: the Lead column names (customer_*, service fields,
    score, category, price, confidence_level, quality_flags, status, ...)
    """
    lead = Lead(**data)
    session.add(lead)
    await session.flush()
    return lead


async def get(session: AsyncSession, lead_id: UUID) -> Optional[Lead]:
    return await session.get(Lead, lead_id)


async def find_recent_duplicate(
    session: AsyncSession, email: str, phone: str, since: datetime
) -> Optional[str]:
    """Return "email" or "phone" if a lead with that contact exists since `since`.

    Email wins: the phone match only counts when no email match exists.
    """
    email_hit = await session.execute(
        select(Lead.id)
        .where(func.lower(Lead.customer_email) == email.lower())
        .where(Lead.created_at >= since)
        .limit(1)
    )
    if email_hit.first() is not None:
        return "email"

    phone_hit = await session.execute(
        select(Lead.id)
        .where(Lead.customer_phone == phone)
        .where(Lead.created_at >= since)
        .limit(1)
    )
    if phone_hit.first() is not None:
        return "phone"
    return None


async def count_from_ip_since(session: AsyncSession, ip_address: str, since: datetime) -> int:
    result = await session.execute(
        select(func.count(Lead.id))
        .where(Lead.ip_address == ip_address)
        .where(Lead.created_at >= since)
    )
    return result.scalar_one()


async def transition_status(
    session: AsyncSession,
    lead_id: UUID,
    status: str,
    from_statuses: Iterable[str],
    **values,
) -> bool:
    """Move a lead to `status` only if it is currently in one of `from_statuses`.

    Returns True when the row changed. Keeps status transitions monotonic
    under duplicate or out-of-order events.
    """
    result = await session.execute(
        update(Lead)
        .where(Lead.id == lead_id)
        .where(Lead.status.in_(list(from_statuses)))
        .values(status=status, **values)
    )
    await session.flush()
    return result.rowcount == 1
