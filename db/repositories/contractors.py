"""Contractor repository: lookups, row locks, credit debits and admin state."""
import logging
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Contractor, ContractorServiceZip

logger = logging.getLogger(__name__)


async def create(
    session: AsyncSession, data: dict, service_zip_codes: Iterable[str] = ()
) -> Contractor:
    """Insert a contractor together with the ZIP codes it serves."""
    contractor = Contractor(
        **data,
        service_zips=[ContractorServiceZip(zip_code=z) for z in dict.fromkeys(service_zip_codes)],
    )
    session.add(contractor)
    await session.flush()
    return contractor


async def get(session: AsyncSession, contractor_id: UUID) -> Optional[Contractor]:
    return await session.get(Contractor, contractor_id, populate_existing=True)


async def get_for_update(session: AsyncSession, contractor_id: UUID) -> Optional[Contractor]:
    """Load a contractor holding a row lock until the transaction ends.

    SQLite has no row locks; its single-writer transactions give the same
    serialisation for the test suite.
    """
    return await session.get(
        Contractor, contractor_id, with_for_update=True, populate_existing=True
    )


async def get_by_stripe_customer(
    session: AsyncSession, stripe_customer_id: str
) -> Optional[Contractor]:
    result = await session.execute(
        select(Contractor).where(Contractor.stripe_customer_id == stripe_customer_id)
    )
    return result.scalars().first()


async def list_matchable_in_zip(session: AsyncSession, zip_code: str) -> list[Contractor]:
    """Return active, accepting, verified contractors serving `zip_code`.

    Ordered by creation so ranking ties resolve to the longest-standing
    contractor. Specialisation filtering happens in the matcher.
    """
    result = await session.execute(
        select(Contractor)
        .join(ContractorServiceZip, ContractorServiceZip.contractor_id == Contractor.id)
        .where(ContractorServiceZip.zip_code == zip_code)
        .where(Contractor.status == "active")
        .where(Contractor.is_accepting_leads == True)
        .where(Contractor.is_verified == True)
        .order_by(Contractor.created_at, Contractor.id)
    )
    return list(result.scalars().unique().all())


async def debit_credit(
    session: AsyncSession, contractor_id: UUID, amount: Decimal
) -> Optional[Decimal]:
    """Atomically subtract `amount` if the balance covers it.

    Returns the new balance, or None when the balance was insufficient (or
    another writer got there first).
    """
    result = await session.execute(
        update(Contractor)
        .where(Contractor.id == contractor_id)
        .where(Contractor.credit_balance >= amount)
        .values(credit_balance=Contractor.credit_balance - amount)
        .returning(Contractor.credit_balance)
        .execution_options(synchronize_session=False)
    )
    row = result.first()
    await session.flush()
    return row[0] if row is not None else None


async def add_credit(session: AsyncSession, contractor_id: UUID, amount: Decimal) -> Decimal:
    """Atomically add `amount` to the balance and return the new balance."""
    result = await session.execute(
        update(Contractor)
        .where(Contractor.id == contractor_id)
        .values(credit_balance=Contractor.credit_balance + amount)
        .returning(Contractor.credit_balance)
        .execution_options(synchronize_session=False)
    )
    balance = result.scalar_one()
    await session.flush()
    return balance


async def update_fields(
    session: AsyncSession, contractor_id: UUID, **values
) -> Optional[Contractor]:
    """Apply plain column updates and return the refreshed contractor."""
    await session.execute(
        update(Contractor)
        .where(Contractor.id == contractor_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return await session.get(Contractor, contractor_id, populate_existing=True)
