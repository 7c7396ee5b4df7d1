"""Tracking number pool and the expired-number recycler.

A number is claimed with a single conditional UPDATE so two concurrent
assignments can never hold the same number. Release is idempotent and can
be guarded by the lead that holds the number. The recycler is the safety
net for numbers whose lead never reached a billable call.
"""
import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import tracking_numbers as numbers_repo
from pipeline.errors import CronAuthError
from schemas.billing import PoolStats, RecycleResult

logger = logging.getLogger(__name__)

CLAIM_ATTEMPTS = 3


class TrackingNumberPool:
    def __init__(self, ttl_days: int = 5, low_pool_threshold: int = 5):
        self.ttl = timedelta(days=ttl_days)
        self.low_pool_threshold = low_pool_threshold

    async def acquire(
        self, session: AsyncSession, lead_id: UUID, now: Optional[datetime] = None
    ) -> Optional[str]:
        """Claim any available number for `lead_id`, or None if the pool is empty."""
        now = now or datetime.now(timezone.utc)
        for _ in range(CLAIM_ATTEMPTS):
            number = await numbers_repo.claim_available(
                session, lead_id, assigned_at=now, expires_at=now + self.ttl
            )
            if number is not None:
                logger.info("Assigned tracking number %s to lead %s", number, lead_id)
                return number
            # Nothing claimed: either the pool is empty or every candidate was
            # taken between our SELECT and UPDATE. Only retry the latter.
            if (await numbers_repo.count_by_status(session))["available"] == 0:
                break

        logger.warning(
            "Tracking number pool exhausted; lead %s proceeds without a number",
            lead_id,
            extra={"alert": "tracking_pool_exhausted", "lead_id": str(lead_id)},
        )
        return None

    async def release(
        self, session: AsyncSession, phone_number: str, lead_id: Optional[UUID] = None
    ) -> bool:
        """Return a number to the pool. False if there was nothing to release."""
        released = await numbers_repo.release(session, phone_number, lead_id=lead_id)
        if released:
            logger.info("Released tracking number %s", phone_number)
        else:
            logger.debug("Tracking number %s already released", phone_number)
        return released

    async def sweep_expired(self, session: AsyncSession, now: Optional[datetime] = None) -> int:
        """Release every assigned number whose expiry has passed."""
        now = now or datetime.now(timezone.utc)
        recycled = 0
        for entry in await numbers_repo.list_expired(session, now):
            if await numbers_repo.release(session, entry.phone_number, lead_id=entry.current_lead_id):
                recycled += 1
                logger.info(
                    "Recycled %s (lead %s, expired %s)",
                    entry.phone_number,
                    entry.current_lead_id,
                    entry.expires_at.isoformat() if entry.expires_at else None,
                )
        return recycled

    async def stats(self, session: AsyncSession) -> PoolStats:
        counts = await numbers_repo.count_by_status(session)
        total = counts["available"] + counts["assigned"]
        utilization = (counts["assigned"] / total * 100) if total else 0.0
        return PoolStats(
            available=counts["available"],
            assigned=counts["assigned"],
            total=total,
            utilization=f"{utilization:.1f}%",
        )


def verify_cron_secret(expected: Optional[str], provided: Optional[str]) -> None:
    """Raise CronAuthError unless `provided` matches the configured secret."""
    if not expected or not provided:
        raise CronAuthError("Cron secret missing")
    if not hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8")):
        raise CronAuthError("Cron secret mismatch")


async def recycle_expired_numbers(
    session: AsyncSession, pool: TrackingNumberPool, now: Optional[datetime] = None
) -> RecycleResult:
    """Sweep expired numbers and report the pool afterwards."""
    recycled = await pool.sweep_expired(session, now)
    stats = await pool.stats(session)
    logger.info(
        "Recycled %d number(s); pool %d available / %d assigned (%s)",
        recycled,
        stats.available,
        stats.assigned,
        stats.utilization,
    )
    if stats.available < pool.low_pool_threshold:
        logger.warning(
            "Tracking number pool low: %d available (threshold %d)",
            stats.available,
            pool.low_pool_threshold,
            extra={"alert": "tracking_pool_low", "available": stats.available},
        )
    return RecycleResult(recycled=recycled, **stats.model_dump())
