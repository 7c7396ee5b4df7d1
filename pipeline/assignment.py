"""Assignment orchestrator: match a scored lead, book the contractor, attach a number.

Runs inside the caller's transaction. The chosen contractor row is locked
and its day/week/month counts are re-read under the lock before the
assignment is written, so two concurrent leads cannot both take a
contractor's last slot. A contractor that turns out to be full is excluded
and the lead is rematched.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from db.models import Contractor, Lead, LeadAssignment
from db.repositories import assignments as assignments_repo
from db.repositories import contractors as contractors_repo
from db.repositories import leads as leads_repo
from pipeline import policy
from pipeline.clock import start_of_day, start_of_month, start_of_week
from pipeline.errors import NoEligibleContractor, TrackingPoolExhausted
from pipeline.matcher import ContractorMatcher, has_capacity
from pipeline.number_pool import TrackingNumberPool
from pipeline.subscriptions import check_eligibility

logger = logging.getLogger(__name__)

MAX_MATCH_ATTEMPTS = 3


@dataclass
class AssignmentOutcome:
    status: str
    assignment: Optional[LeadAssignment] = None
    contractor: Optional[Contractor] = None
    tracking_number: Optional[str] = None
    response_deadline: Optional[datetime] = None
    no_contractor: Optional[NoEligibleContractor] = None
    pool_exhausted: Optional[TrackingPoolExhausted] = None

    @property
    def assigned(self) -> bool:
        return self.assignment is not None


class AssignmentOrchestrator:
    def __init__(
        self,
        settings: Settings,
        matcher: ContractorMatcher,
        pool: TrackingNumberPool,
        max_attempts: int = MAX_MATCH_ATTEMPTS,
    ):
        self.settings = settings
        self.matcher = matcher
        self.pool = pool
        self.max_attempts = max_attempts

    async def assign(
        self, session: AsyncSession, lead: Lead, now: Optional[datetime] = None
    ) -> AssignmentOutcome:
        now = now or datetime.now(timezone.utc)

        if lead.category == "NURTURE":
            await leads_repo.transition_status(
                session, lead.id, "nurture_no_assignment", ["pending_assignment"]
            )
            logger.info("Lead %s is NURTURE; no assignment attempted", lead.id)
            return AssignmentOutcome(status="nurture_no_assignment")

        excluded: set = set()
        for _ in range(self.max_attempts):
            match = await self.matcher.match(session, lead, now=now, exclude=excluded)
            if not match.matched:
                return await self._unassigned(
                    session, lead, NoEligibleContractor(match.reason, match.status)
                )

            contractor = await self._book(session, match.contractor.id, now)
            if contractor is None:
                logger.info(
                    "Contractor %s filled up before booking lead %s; rematching",
                    match.contractor.id,
                    lead.id,
                )
                excluded.add(match.contractor.id)
                continue
            return await self._finish(session, lead, contractor, now)

        return await self._unassigned(
            session,
            lead,
            NoEligibleContractor("All available contractors at capacity", "contractors_at_capacity"),
        )

    async def _book(
        self, session: AsyncSession, contractor_id, now: datetime
    ) -> Optional[Contractor]:
        """Lock the contractor and confirm it can still take a lead."""
        contractor = await contractors_repo.get_for_update(session, contractor_id)
        if contractor is None:
            return None
        today = await assignments_repo.count_since(session, contractor.id, start_of_day(now))
        week = await assignments_repo.count_since(session, contractor.id, start_of_week(now))
        month = await assignments_repo.count_since(session, contractor.id, start_of_month(now))
        if not has_capacity(contractor, today, week):
            return None
        if not check_eligibility(self.settings, contractor, month).eligible:
            return None
        return contractor

    async def _finish(
        self, session: AsyncSession, lead: Lead, contractor: Contractor, now: datetime
    ) -> AssignmentOutcome:
        deadline = now + policy.response_window(lead.category)
        assignment = await assignments_repo.create(
            session,
            lead_id=lead.id,
            contractor_id=contractor.id,
            assigned_at=now,
            response_deadline=deadline,
        )
        contractor.current_lead_count = (contractor.current_lead_count or 0) + 1
        contractor.total_leads_received = (contractor.total_leads_received or 0) + 1
        await session.flush()

        await leads_repo.transition_status(
            session, lead.id, "assigned", ["pending_assignment"], assigned_at=now
        )

        outcome = AssignmentOutcome(
            status="assigned",
            assignment=assignment,
            contractor=contractor,
            response_deadline=deadline,
        )
        number = await self.pool.acquire(session, lead.id, now=now)
        if number is None:
            outcome.pool_exhausted = TrackingPoolExhausted(lead.id)
        else:
            await assignments_repo.set_tracking_number(session, assignment.id, number)
            outcome.tracking_number = number

        logger.info(
            "Assigned lead %s to contractor %s (deadline %s, number %s)",
            lead.id,
            contractor.id,
            deadline.isoformat(),
            number,
            extra={
                "stage": "assigned",
                "lead_id": str(lead.id),
                "contractor_id": str(contractor.id),
            },
        )
        return outcome

    async def _unassigned(
        self, session: AsyncSession, lead: Lead, reason: NoEligibleContractor
    ) -> AssignmentOutcome:
        await leads_repo.transition_status(
            session,
            lead.id,
            reason.status,
            ["pending_assignment"],
            rejection_reason=reason.reason,
        )
        logger.info("Lead %s not assigned: %s", lead.id, reason.reason)
        return AssignmentOutcome(status=reason.status, no_contractor=reason)
