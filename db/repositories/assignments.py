"""Lead assignment repository: creation, capacity counts and lookups."""
import logging
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import LeadAssignment

logger = logging.getLogger(__name__)


async def create(
    session: AsyncSession,
    lead_id: UUID,
    contractor_id: UUID,
    assigned_at: datetime,
    response_deadline: datetime,
) -> LeadAssignment:
    assignment = LeadAssignment(
        lead_id=lead_id,
        contractor_id=contractor_id,
        assigned_at=assigned_at,
        response_deadline=response_deadline,
        status="assigned",
    )
    session.add(assignment)
    await session.flush()
    return assignment


async def get_by_lead(session: AsyncSession, lead_id: UUID) -> Optional[LeadAssignment]:
    result = await session.execute(
        select(LeadAssignment).where(LeadAssignment.lead_id == lead_id)
    )
    return result.scalar_one_or_none()


async def get_latest_by_tracking_number(
    session: AsyncSession, tracking_number: str
) -> Optional[LeadAssignment]:
    """Most recent assignment that was ever given this tracking number."""
    result = await session.execute(
        select(LeadAssignment)
        .where(LeadAssignment.tracking_number == tracking_number)
        .order_by(LeadAssignment.assigned_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def set_tracking_number(
    session: AsyncSession, assignment_id: UUID, tracking_number: str
) -> None:
    await session.execute(
        update(LeadAssignment)
        .where(LeadAssignment.id == assignment_id)
        .values(tracking_number=tracking_number)
    )
    await session.flush()


async def count_since(session: AsyncSession, contractor_id: UUID, since: datetime) -> int:
    result = await session.execute(
        select(func.count(LeadAssignment.id))
        .where(LeadAssignment.contractor_id == contractor_id)
        .where(LeadAssignment.assigned_at >= since)
    )
    return result.scalar_one()


async def counts_since(
    session: AsyncSession, contractor_ids: Iterable[UUID], since: datetime
) -> dict[UUID, int]:
    """Assignment counts per contractor since `since`; absent ids count 0."""
    ids = list(contractor_ids)
    if not ids:
        return {}
    result = await session.execute(
        select(LeadAssignment.contractor_id, func.count(LeadAssignment.id))
        .where(LeadAssignment.contractor_id.in_(ids))
        .where(LeadAssignment.assigned_at >= since)
        .group_by(LeadAssignment.contractor_id)
    )
    counts = {contractor_id: 0 for contractor_id in ids}
    counts.update({row[0]: row[1] for row in result.all()})
    return counts


async def transition_status(
    session: AsyncSession,
    assignment_id: UUID,
    status: str,
    from_statuses: Iterable[str],
    **values,
) -> bool:
    """Conditional status change; True when the row moved."""
    result = await session.execute(
        update(LeadAssignment)
        .where(LeadAssignment.id == assignment_id)
        .where(LeadAssignment.status.in_(list(from_statuses)))
        .values(status=status, **values)
    )
    await session.flush()
    return result.rowcount == 1
