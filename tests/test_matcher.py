"""Tests for the contractor matching funnel and ranking."""
from datetime import timedelta
from decimal import Decimal

import pytest

from db.models import Contractor
from db.repositories import assignments as assignments_repo
from pipeline import matcher
from pipeline.matcher import Candidate, ContractorMatcher

from conftest import NOW


def _contractor(**overrides) -> Contractor:
    values = {
        "business_name": "Cool Air HVAC",
        "specializations": ["Emergency Repair"],
        "customer_rating": 4.9,
        "conversion_rate": 0.85,
        "avg_response_time": 10,
        "max_leads_per_day": 5,
        "max_leads_per_week": 20,
    }
    values.update(overrides)
    return Contractor(**values)


class TestPerformanceBar:
    def test_platinum_bar(self):
        assert matcher.meets_performance_bar(_contractor(), "PLATINUM")
        assert not matcher.meets_performance_bar(_contractor(customer_rating=4.4), "PLATINUM")
        assert not matcher.meets_performance_bar(_contractor(avg_response_time=21), "PLATINUM")

    def test_missing_metrics_are_worst_case(self):
        blank = _contractor(customer_rating=None, conversion_rate=None, avg_response_time=None)
        assert not matcher.meets_performance_bar(blank, "GOLD")
        assert matcher.meets_performance_bar(blank, "SILVER")
        assert matcher.meets_performance_bar(blank, "BRONZE")

    def test_filter_falls_back_to_everyone_when_nobody_qualifies(self):
        candidates = [Candidate(_contractor(customer_rating=4.0)), Candidate(_contractor(customer_rating=3.5))]
        assert matcher.performance_filter(candidates, "PLATINUM") == candidates

    def test_filter_keeps_only_qualifying(self):
        strong = Candidate(_contractor())
        weak = Candidate(_contractor(customer_rating=4.0))
        assert matcher.performance_filter([weak, strong], "PLATINUM") == [strong]


class TestCapacity:
    def test_daily_cap_is_exclusive(self):
        c = _contractor(max_leads_per_day=3)
        assert matcher.has_capacity(c, leads_today=2, leads_this_week=2)
        assert not matcher.has_capacity(c, leads_today=3, leads_this_week=3)

    def test_weekly_cap(self):
        c = _contractor(max_leads_per_week=10)
        assert not matcher.has_capacity(c, leads_today=0, leads_this_week=10)

    def test_no_caps_means_unlimited(self):
        c = _contractor(max_leads_per_day=None, max_leads_per_week=None)
        assert matcher.has_capacity(c, leads_today=100, leads_this_week=1000)


class TestRanking:
    def test_priority_score_components(self):
        # 50 base + 20 rating + 20 conversion + 15 response + 15 load + 10 specialisation
        assert matcher.priority_score(_contractor(), "Emergency Repair", leads_today=0) == 130
        # 3/5 load is 0.6, worth 5
        assert matcher.priority_score(_contractor(), "Emergency Repair", leads_today=3) == 120
        assert matcher.priority_score(_contractor(), "AC Repair", leads_today=0) == 120

    def test_ties_keep_input_order(self):
        first, second = Candidate(_contractor()), Candidate(_contractor())
        assert matcher.rank([first, second], "Emergency Repair") == [first, second]

    def test_higher_priority_first(self):
        average = Candidate(_contractor(customer_rating=4.0, conversion_rate=0.5))
        best = Candidate(_contractor())
        ranked = matcher.rank([average, best], "Emergency Repair")
        assert ranked[0] is best
        assert ranked[0].priority > ranked[1].priority


class TestContractorMatcher:
    @pytest.mark.asyncio
    async def test_selects_best_in_area(self, session, settings, make_contractor, make_lead):
        await make_contractor(
            session, business_name="Average", customer_rating=4.6, conversion_rate=0.72, avg_response_time=18
        )
        best = await make_contractor(session, business_name="Best")
        await make_contractor(session, business_name="Elsewhere", zips=("10001",))
        await make_contractor(session, business_name="Unverified", is_verified=False)
        lead = await make_lead(session)

        result = await ContractorMatcher(settings).match(session, lead, now=NOW)

        assert result.matched
        assert result.contractor.id == best.id
        assert result.priority == 130
        assert [c.contractor.business_name for c in result.ranked] == ["Best", "Average"]

    @pytest.mark.asyncio
    async def test_specialisation_is_required(self, session, settings, make_contractor, make_lead):
        await make_contractor(session, specializations=["Maintenance/Tune-up"])
        lead = await make_lead(session)

        result = await ContractorMatcher(settings).match(session, lead, now=NOW)

        assert not result.matched
        assert result.status == "no_contractor_available"
        assert result.reason == "No contractors available in ZIP 90210 for Emergency Repair"

    @pytest.mark.asyncio
    async def test_ineligible_contractors_are_skipped(self, session, settings, make_contractor, make_lead):
        await make_contractor(session, credit_balance=Decimal("10.00"))
        await make_contractor(session, subscription_status="past_due")
        lead = await make_lead(session)

        result = await ContractorMatcher(settings).match(session, lead, now=NOW)

        assert result.status == "no_contractor_available"

    @pytest.mark.asyncio
    async def test_all_at_capacity(self, session, settings, make_contractor, make_lead):
        contractor = await make_contractor(session, max_leads_per_day=1)
        earlier = await make_lead(session)
        await assignments_repo.create(
            session,
            lead_id=earlier.id,
            contractor_id=contractor.id,
            assigned_at=NOW - timedelta(hours=2),
            response_deadline=NOW,
        )
        lead = await make_lead(session)

        result = await ContractorMatcher(settings).match(session, lead, now=NOW)

        assert result.status == "contractors_at_capacity"
        assert result.reason == "All available contractors at capacity"

    @pytest.mark.asyncio
    async def test_yesterdays_leads_do_not_count_today(self, session, settings, make_contractor, make_lead):
        contractor = await make_contractor(session, max_leads_per_day=1)
        earlier = await make_lead(session)
        await assignments_repo.create(
            session,
            lead_id=earlier.id,
            contractor_id=contractor.id,
            assigned_at=NOW - timedelta(days=1),
            response_deadline=NOW,
        )
        lead = await make_lead(session)

        result = await ContractorMatcher(settings).match(session, lead, now=NOW)

        assert result.contractor.id == contractor.id

    @pytest.mark.asyncio
    async def test_excluded_contractors_are_not_matched(self, session, settings, make_contractor, make_lead):
        only = await make_contractor(session)
        lead = await make_lead(session)

        result = await ContractorMatcher(settings).match(session, lead, now=NOW, exclude={only.id})

        assert not result.matched
