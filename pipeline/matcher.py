"""Contractor matcher: eligibility -> performance -> capacity funnel, then ranking.

The funnel narrows the contractors serving the lead's ZIP code and service
type down to the ones that may take the lead right now, then ranks the
survivors with an additive priority score. Each stage logs how many
contractors survived it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from db.models import Contractor, Lead
from db.repositories import assignments as assignments_repo
from db.repositories import contractors as contractors_repo
from pipeline import policy
from pipeline.clock import start_of_day, start_of_month, start_of_week
from pipeline.subscriptions import Eligibility, check_eligibility

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    contractor: Contractor
    eligibility: Optional[Eligibility] = None
    leads_today: int = 0
    leads_this_week: int = 0
    priority: int = 0


@dataclass
class MatchResult:
    contractor: Optional[Contractor] = None
    priority: Optional[int] = None
    status: Optional[str] = None
    reason: Optional[str] = None
    ranked: list[Candidate] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.contractor is not None


# ---------------------------------------------------------------------------
# Pure funnel stages
# ---------------------------------------------------------------------------


def _rating(c: Contractor) -> float:
    return float(c.customer_rating) if c.customer_rating is not None else policy.DEFAULT_RATING


def _conversion(c: Contractor) -> float:
    return float(c.conversion_rate) if c.conversion_rate is not None else policy.DEFAULT_CONVERSION


def _response_minutes(c: Contractor) -> int:
    if c.avg_response_time is None:
        return policy.DEFAULT_RESPONSE_MINUTES
    return c.avg_response_time


def serves_lead(contractor: Contractor, lead: Lead) -> bool:
    return (
        lead.customer_zip in contractor.service_zip_codes
        and lead.service_type in (contractor.specializations or [])
    )


def meets_performance_bar(contractor: Contractor, category: str) -> bool:
    bar = policy.PERFORMANCE_BARS.get(category)
    if bar is None:
        return True
    return (
        _rating(contractor) >= bar.min_rating
        and _conversion(contractor) >= bar.min_conversion
        and _response_minutes(contractor) <= bar.max_response_minutes
    )


def performance_filter(candidates: list[Candidate], category: str) -> list[Candidate]:
    """Keep the contractors meeting the category's bar; all of them if none do."""
    passing = [c for c in candidates if meets_performance_bar(c.contractor, category)]
    if passing:
        return passing
    if category in policy.PERFORMANCE_BARS:
        logger.info(
            "No contractor meets the %s bar, falling back to %d eligible",
            category,
            len(candidates),
        )
    return list(candidates)


def has_capacity(contractor: Contractor, leads_today: int, leads_this_week: int) -> bool:
    if contractor.max_leads_per_day is not None and leads_today >= contractor.max_leads_per_day:
        return False
    if contractor.max_leads_per_week is not None and leads_this_week >= contractor.max_leads_per_week:
        return False
    return True


def _tier_bonus(value: float, tiers, higher_is_better: bool = True) -> int:
    for threshold, bonus in tiers:
        if (value >= threshold) if higher_is_better else (value <= threshold):
            return bonus
    return 0


def priority_score(contractor: Contractor, service_type: str, leads_today: int) -> int:
    score = policy.BASE_PRIORITY
    score += _tier_bonus(_rating(contractor), policy.RATING_BONUS)
    score += _tier_bonus(_conversion(contractor), policy.CONVERSION_BONUS)
    score += _tier_bonus(_response_minutes(contractor), policy.RESPONSE_BONUS, higher_is_better=False)

    daily_cap = contractor.max_leads_per_day or policy.LOAD_DEFAULT_DAILY_CAP
    score += _tier_bonus(leads_today / daily_cap, policy.LOAD_BONUS, higher_is_better=False)

    if service_type in (contractor.specializations or []):
        score += policy.SPECIALIZATION_BONUS
    return score


def rank(candidates: list[Candidate], service_type: str) -> list[Candidate]:
    """Highest priority first; ties keep input order."""
    for c in candidates:
        c.priority = priority_score(c.contractor, service_type, c.leads_today)
    return sorted(candidates, key=lambda c: -c.priority)


# ---------------------------------------------------------------------------
# Store-backed matcher
# ---------------------------------------------------------------------------


class ContractorMatcher:
    def __init__(self, settings: Settings):
        self.settings = settings

    async def match(
        self,
        session: AsyncSession,
        lead: Lead,
        now: Optional[datetime] = None,
        exclude: Iterable[UUID] = (),
    ) -> MatchResult:
        now = now or datetime.now(timezone.utc)
        excluded = set(exclude)
        log_extra = {"lead_id": str(lead.id), "category": lead.category}

        in_area = [
            c
            for c in await contractors_repo.list_matchable_in_zip(session, lead.customer_zip)
            if c.id not in excluded and serves_lead(c, lead)
        ]
        ids = [c.id for c in in_area]
        this_month = await assignments_repo.counts_since(session, ids, start_of_month(now))

        eligible = []
        for contractor in in_area:
            verdict = check_eligibility(self.settings, contractor, this_month.get(contractor.id, 0))
            if verdict.eligible:
                eligible.append(Candidate(contractor, verdict))
            else:
                logger.debug("Contractor %s not eligible: %s", contractor.id, verdict.reason)
        logger.info(
            "matcher.eligible: %d of %d in-area contractor(s)",
            len(eligible),
            len(in_area),
            extra={**log_extra, "stage": "eligible", "survivors": len(eligible)},
        )
        if not eligible:
            return MatchResult(
                status="no_contractor_available",
                reason=f"No contractors available in ZIP {lead.customer_zip} for {lead.service_type}",
            )

        performers = performance_filter(eligible, lead.category)
        logger.info(
            "matcher.performance: %d survivor(s)",
            len(performers),
            extra={**log_extra, "stage": "performance", "survivors": len(performers)},
        )

        performer_ids = [c.contractor.id for c in performers]
        today = await assignments_repo.counts_since(session, performer_ids, start_of_day(now))
        week = await assignments_repo.counts_since(session, performer_ids, start_of_week(now))
        available = []
        for candidate in performers:
            candidate.leads_today = today.get(candidate.contractor.id, 0)
            candidate.leads_this_week = week.get(candidate.contractor.id, 0)
            if has_capacity(candidate.contractor, candidate.leads_today, candidate.leads_this_week):
                available.append(candidate)
        logger.info(
            "matcher.capacity: %d survivor(s)",
            len(available),
            extra={**log_extra, "stage": "capacity", "survivors": len(available)},
        )
        if not available:
            return MatchResult(
                status="contractors_at_capacity",
                reason="All available contractors at capacity",
            )

        ranked = rank(available, lead.service_type)
        best = ranked[0]
        logger.info(
            "matcher.selected: contractor %s (priority %d)",
            best.contractor.id,
            best.priority,
            extra={
                **log_extra,
                "stage": "selected",
                "contractor_id": str(best.contractor.id),
                "priority": best.priority,
            },
        )
        return MatchResult(contractor=best.contractor, priority=best.priority, ranked=ranked)
