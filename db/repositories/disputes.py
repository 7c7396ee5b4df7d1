"""Dispute repository."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Dispute

logger = logging.getLogger(__name__)


async def create(
    session: AsyncSession,
    lead_id: UUID,
    contractor_id: UUID,
    reason: str,
    description: Optional[str] = None,
    evidence: Optional[dict] = None,
) -> Dispute:
    dispute = Dispute(
        lead_id=lead_id,
        contractor_id=contractor_id,
        reason=reason,
        description=description,
        evidence=evidence,
        status="pending",
    )
    session.add(dispute)
    await session.flush()
    return dispute


async def get(session: AsyncSession, dispute_id: UUID) -> Optional[Dispute]:
    return await session.get(Dispute, dispute_id)


async def resolve(
    session: AsyncSession,
    dispute_id: UUID,
    status: str,
    resolution: str,
    resolved_at: datetime,
    resolution_notes: Optional[str] = None,
    credit_amount: Optional[Decimal] = None,
) -> bool:
    """Close a pending dispute. False if it was already resolved."""
    result = await session.execute(
        update(Dispute)
        .where(Dispute.id == dispute_id)
        .where(Dispute.status == "pending")
        .values(
            status=status,
            resolution=resolution,
            resolution_notes=resolution_notes,
            credit_amount=credit_amount,
            resolved_at=resolved_at,
        )
    )
    await session.flush()
    return result.rowcount == 1
