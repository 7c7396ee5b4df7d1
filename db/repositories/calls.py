"""Call log repository: idempotent upsert keyed by the provider call SID."""
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import CallLog
from db.repositories.base import insert_for

logger = logging.getLogger(__name__)


async def upsert(session: AsyncSession, data: dict) -> CallLog:
    """Insert or update a call log by call_sid (dedup key).

    data dict keys: call_sid, lead_id, contractor_id, tracking_number,
    call_status, call_duration, call_ended_at, recording_url, recording_sid,
    call_direction
    """
    stmt = insert_for(session, CallLog).values(**data)
    stmt = stmt.on_conflict_do_update(
        index_elements=["call_sid"],
        set_={
            k: v
            for k, v in data.items()
            if k not in ("call_sid", "lead_id", "contractor_id", "tracking_number", "call_started_at")
            and v is not None
        } or {"call_status": data["call_status"]},
    ).returning(CallLog)
    result = await session.execute(stmt, execution_options={"populate_existing": True})
    await session.flush()
    return result.scalar_one()


async def get_by_sid(session: AsyncSession, call_sid: str) -> Optional[CallLog]:
    result = await session.execute(
        select(CallLog)
        .where(CallLog.call_sid == call_sid)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def attach_recording(
    session: AsyncSession, call_sid: str, recording_url: str, recording_sid: Optional[str]
) -> bool:
    """Store recording references on an existing call log. False if unknown SID."""
    result = await session.execute(
        update(CallLog)
        .where(CallLog.call_sid == call_sid)
        .values(recording_url=recording_url, recording_sid=recording_sid)
    )
    await session.flush()
    return result.rowcount == 1
