"""Tests for the assignment orchestrator."""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from db.repositories import assignments as assignments_repo
from db.repositories import contractors as contractors_repo
from db.repositories import leads as leads_repo
from pipeline.assignment import AssignmentOrchestrator
from pipeline.matcher import ContractorMatcher, MatchResult
from pipeline.number_pool import TrackingNumberPool

from conftest import NOW


def _orchestrator(settings, matcher=None):
    return AssignmentOrchestrator(settings, matcher or ContractorMatcher(settings), TrackingNumberPool())


@pytest.mark.asyncio
async def test_platinum_lead_is_assigned_with_number(session, settings, make_contractor, make_lead, add_numbers):
    contractor = await make_contractor(session)
    await add_numbers(session, "+13105550100")
    lead = await make_lead(session)

    outcome = await _orchestrator(settings).assign(session, lead, now=NOW)

    assert outcome.assigned
    assert outcome.status == "assigned"
    assert outcome.contractor.id == contractor.id
    assert outcome.response_deadline == NOW + timedelta(minutes=20)
    assert outcome.tracking_number == "+13105550100"
    assert outcome.pool_exhausted is None

    stored = await assignments_repo.get_by_lead(session, lead.id)
    assert stored.tracking_number == "+13105550100"
    assert stored.status == "assigned"

    lead = await leads_repo.get(session, lead.id)
    assert lead.status == "assigned"
    assert lead.assigned_at == NOW

    contractor = await contractors_repo.get(session, contractor.id)
    assert contractor.total_leads_received == 1
    assert contractor.current_lead_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "category,window",
    [("GOLD", timedelta(hours=2)), ("SILVER", timedelta(hours=24)), ("BRONZE", timedelta(hours=48))],
)
async def test_response_window_by_category(session, settings, make_contractor, make_lead, add_numbers, category, window):
    await make_contractor(session)
    await add_numbers(session, "+13105550100")
    lead = await make_lead(session, category=category)

    outcome = await _orchestrator(settings).assign(session, lead, now=NOW)

    assert outcome.response_deadline == NOW + window


@pytest.mark.asyncio
async def test_nurture_lead_is_never_assigned(session, settings, make_contractor, make_lead):
    await make_contractor(session)
    lead = await make_lead(session, category="NURTURE", score=26)

    outcome = await _orchestrator(settings).assign(session, lead, now=NOW)

    assert outcome.status == "nurture_no_assignment"
    assert not outcome.assigned
    assert await assignments_repo.get_by_lead(session, lead.id) is None
    assert (await leads_repo.get(session, lead.id)).status == "nurture_no_assignment"


@pytest.mark.asyncio
async def test_no_contractor_records_reason(session, settings, make_lead):
    lead = await make_lead(session)

    outcome = await _orchestrator(settings).assign(session, lead, now=NOW)

    assert outcome.status == "no_contractor_available"
    assert outcome.no_contractor.reason == "No contractors available in ZIP 90210 for Emergency Repair"
    lead = await leads_repo.get(session, lead.id)
    assert lead.status == "no_contractor_available"
    assert lead.rejection_reason == outcome.no_contractor.reason


@pytest.mark.asyncio
async def test_empty_pool_still_assigns(session, settings, make_contractor, make_lead):
    await make_contractor(session)
    lead = await make_lead(session)

    outcome = await _orchestrator(settings).assign(session, lead, now=NOW)

    assert outcome.assigned
    assert outcome.tracking_number is None
    assert outcome.pool_exhausted is not None
    assert outcome.pool_exhausted.lead_id == lead.id


@pytest.mark.asyncio
async def test_contractor_full_under_lock_is_rematched(session, settings, make_contractor, make_lead, add_numbers):
    full = await make_contractor(session, business_name="Full", max_leads_per_day=1)
    spare = await make_contractor(session, business_name="Spare")
    earlier = await make_lead(session)
    await assignments_repo.create(
        session,
        lead_id=earlier.id,
        contractor_id=full.id,
        assigned_at=NOW - timedelta(minutes=5),
        response_deadline=NOW,
    )
    await add_numbers(session, "+13105550100")
    lead = await make_lead(session)

    # A stale match that still offers the full contractor, as a concurrent
    # request would have seen it.
    matcher = MagicMock()
    matcher.match = AsyncMock(
        side_effect=[MatchResult(contractor=full, priority=130), MatchResult(contractor=spare, priority=120)]
    )

    outcome = await _orchestrator(settings, matcher).assign(session, lead, now=NOW)

    assert outcome.contractor.id == spare.id
    assert matcher.match.await_count == 2
    assert matcher.match.await_args_list[1].kwargs["exclude"] == {full.id}


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(session, settings, make_contractor, make_lead):
    full = await make_contractor(session, max_leads_per_day=1)
    earlier = await make_lead(session)
    await assignments_repo.create(
        session,
        lead_id=earlier.id,
        contractor_id=full.id,
        assigned_at=NOW - timedelta(minutes=5),
        response_deadline=NOW,
    )
    lead = await make_lead(session)
    matcher = MagicMock()
    matcher.match = AsyncMock(return_value=MatchResult(contractor=full, priority=130))

    outcome = await _orchestrator(settings, matcher).assign(session, lead, now=NOW)

    assert outcome.status == "contractors_at_capacity"
    assert matcher.match.await_count == 3
