"""Billing record repository. One record per (lead, contractor), ever."""
import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import BillingRecord
from db.repositories.base import insert_for

logger = logging.getLogger(__name__)


async def get_for_pair(
    session: AsyncSession, lead_id: UUID, contractor_id: UUID
) -> Optional[BillingRecord]:
    result = await session.execute(
        select(BillingRecord)
        .where(BillingRecord.lead_id == lead_id)
        .where(BillingRecord.contractor_id == contractor_id)
    )
    return result.scalar_one_or_none()


async def get(session: AsyncSession, record_id: UUID) -> Optional[BillingRecord]:
    return await session.get(BillingRecord, record_id, populate_existing=True)


async def create_if_absent(
    session: AsyncSession,
    lead_id: UUID,
    contractor_id: UUID,
    amount_owed: Decimal,
    notes: Optional[str] = None,
) -> Optional[BillingRecord]:
    """Insert a pending record unless one exists for the pair.

    Returns the new record, or None when a record already existed (including
    one inserted concurrently by a duplicate webhook).
    """
    stmt = (
        insert_for(session, BillingRecord)
        .values(
            lead_id=lead_id,
            contractor_id=contractor_id,
            amount_owed=amount_owed,
            status="pending",
            notes=notes,
        )
        .on_conflict_do_nothing(index_elements=["lead_id", "contractor_id"])
        .returning(BillingRecord.id)
    )
    result = await session.execute(stmt)
    row = result.first()
    await session.flush()
    if row is None:
        return None
    return await session.get(BillingRecord, row[0])


async def update_record(session: AsyncSession, record_id: UUID, **values) -> BillingRecord:
    await session.execute(
        update(BillingRecord)
        .where(BillingRecord.id == record_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return await session.get(BillingRecord, record_id, populate_existing=True)
