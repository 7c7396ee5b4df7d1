"""Tracking number repository: atomic claim, guarded release, sweep queries."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import TrackingNumber
from db.repositories.base import insert_for

logger = logging.getLogger(__name__)


async def add(session: AsyncSession, phone_number: str) -> None:
    """Provision a number into the pool. Idempotent on phone_number."""
    stmt = (
        insert_for(session, TrackingNumber)
        .values(phone_number=phone_number, status="available")
        .on_conflict_do_nothing(index_elements=["phone_number"])
    )
    await session.execute(stmt)
    await session.flush()


async def get_by_number(session: AsyncSession, phone_number: str) -> Optional[TrackingNumber]:
    result = await session.execute(
        select(TrackingNumber)
        .where(TrackingNumber.phone_number == phone_number)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def claim_available(
    session: AsyncSession, lead_id: UUID, assigned_at: datetime, expires_at: datetime
) -> Optional[str]:
    """Flip one available row to assigned for `lead_id` in a single statement.

    The inner SELECT skips rows locked by concurrent claimers and the outer
    WHERE re-checks status, so a row can only be claimed once. Returns the
    phone number, or None if this attempt found nothing to claim.
    """
    candidate = (
        select(TrackingNumber.id)
        .where(TrackingNumber.status == "available")
        .limit(1)
        .with_for_update(skip_locked=True)
        .scalar_subquery()
    )
    result = await session.execute(
        update(TrackingNumber)
        .where(TrackingNumber.id == candidate)
        .where(TrackingNumber.status == "available")
        .values(
            status="assigned",
            current_lead_id=lead_id,
            assigned_at=assigned_at,
            expires_at=expires_at,
        )
        .returning(TrackingNumber.phone_number)
        .execution_options(synchronize_session=False)
    )
    row = result.first()
    await session.flush()
    return row[0] if row is not None else None


async def release(
    session: AsyncSession, phone_number: str, lead_id: Optional[UUID] = None
) -> bool:
    """Return a number to the pool.

    A no-op (False) when the number is already available, or when `lead_id`
    is given and the number is currently held by a different lead.
    """
    stmt = (
        update(TrackingNumber)
        .where(TrackingNumber.phone_number == phone_number)
        .where(TrackingNumber.status == "assigned")
    )
    if lead_id is not None:
        stmt = stmt.where(TrackingNumber.current_lead_id == lead_id)
    result = await session.execute(
        stmt.values(
            status="available",
            current_lead_id=None,
            assigned_at=None,
            expires_at=None,
        ).execution_options(synchronize_session=False)
    )
    await session.flush()
    return result.rowcount == 1


async def list_expired(session: AsyncSession, now: datetime) -> list[TrackingNumber]:
    result = await session.execute(
        select(TrackingNumber)
        .where(TrackingNumber.status == "assigned")
        .where(TrackingNumber.expires_at <= now)
        .order_by(TrackingNumber.expires_at)
    )
    return list(result.scalars().all())


async def count_by_status(session: AsyncSession) -> dict[str, int]:
    result = await session.execute(
        select(TrackingNumber.status, func.count(TrackingNumber.id)).group_by(
            TrackingNumber.status
        )
    )
    counts = {"available": 0, "assigned": 0}
    counts.update({row[0]: row[1] for row in result.all()})
    return counts
