"""Tests for the tracking number pool and the expired-number recycler."""
from datetime import timedelta

import pytest

from db.repositories import tracking_numbers as numbers_repo
from pipeline.errors import CronAuthError
from pipeline.number_pool import TrackingNumberPool, recycle_expired_numbers, verify_cron_secret

from conftest import NOW


@pytest.mark.asyncio
async def test_acquire_marks_number_assigned(session, make_lead, add_numbers):
    await add_numbers(session, "+13105550100")
    lead = await make_lead(session)
    pool = TrackingNumberPool(ttl_days=5)

    number = await pool.acquire(session, lead.id, now=NOW)

    assert number == "+13105550100"
    entry = await numbers_repo.get_by_number(session, number)
    assert entry.status == "assigned"
    assert entry.current_lead_id == lead.id
    assert entry.assigned_at == NOW
    assert entry.expires_at == NOW + timedelta(days=5)


@pytest.mark.asyncio
async def test_each_lead_gets_a_distinct_number(session, make_lead, add_numbers):
    await add_numbers(session, "+13105550100", "+13105550101")
    pool = TrackingNumberPool()
    first = await pool.acquire(session, (await make_lead(session)).id, now=NOW)
    second = await pool.acquire(session, (await make_lead(session)).id, now=NOW)
    third = await pool.acquire(session, (await make_lead(session)).id, now=NOW)

    assert {first, second} == {"+13105550100", "+13105550101"}
    assert third is None


@pytest.mark.asyncio
async def test_provisioning_is_idempotent(session, add_numbers):
    await add_numbers(session, "+13105550100", "+13105550100")
    stats = await TrackingNumberPool().stats(session)
    assert stats.total == 1


@pytest.mark.asyncio
async def test_release_is_guarded_by_lead(session, make_lead, add_numbers):
    await add_numbers(session, "+13105550100")
    holder = await make_lead(session)
    other = await make_lead(session)
    pool = TrackingNumberPool()
    number = await pool.acquire(session, holder.id, now=NOW)

    assert not await pool.release(session, number, lead_id=other.id)
    assert await pool.release(session, number, lead_id=holder.id)
    # Second release is a no-op
    assert not await pool.release(session, number, lead_id=holder.id)

    entry = await numbers_repo.get_by_number(session, number)
    assert entry.status == "available"
    assert entry.current_lead_id is None
    assert entry.expires_at is None


@pytest.mark.asyncio
async def test_released_number_can_be_acquired_again(session, make_lead, add_numbers):
    await add_numbers(session, "+13105550100")
    first = await make_lead(session)
    second = await make_lead(session)
    pool = TrackingNumberPool(ttl_days=5)

    number = await pool.acquire(session, first.id, now=NOW - timedelta(days=2))
    assert await pool.release(session, number, lead_id=first.id)
    again = await pool.acquire(session, second.id, now=NOW)

    assert again == number
    entry = await numbers_repo.get_by_number(session, again)
    assert entry.status == "assigned"
    assert entry.current_lead_id == second.id
    assert entry.assigned_at == NOW
    assert entry.expires_at == NOW + timedelta(days=5)


@pytest.mark.asyncio
async def test_sweep_releases_only_expired(session, make_lead, add_numbers):
    await add_numbers(session, "+13105550100", "+13105550101")
    pool = TrackingNumberPool(ttl_days=5)
    stale = await pool.acquire(session, (await make_lead(session)).id, now=NOW - timedelta(days=6))
    fresh = await pool.acquire(session, (await make_lead(session)).id, now=NOW - timedelta(days=1))

    assert await pool.sweep_expired(session, now=NOW) == 1
    assert (await numbers_repo.get_by_number(session, stale)).status == "available"
    assert (await numbers_repo.get_by_number(session, fresh)).status == "assigned"


@pytest.mark.asyncio
async def test_recycle_reports_pool_state(session, make_lead, add_numbers, caplog):
    await add_numbers(session, "+13105550100", "+13105550101")
    pool = TrackingNumberPool(ttl_days=5, low_pool_threshold=5)
    await pool.acquire(session, (await make_lead(session)).id, now=NOW - timedelta(days=6))
    await pool.acquire(session, (await make_lead(session)).id, now=NOW)

    result = await recycle_expired_numbers(session, pool, now=NOW)

    assert result.recycled == 1
    assert result.available == 1
    assert result.assigned == 1
    assert result.total == 2
    assert result.utilization == "50.0%"
    assert "Tracking number pool low" in caplog.text


@pytest.mark.asyncio
async def test_stats_on_empty_pool(session):
    stats = await TrackingNumberPool().stats(session)
    assert (stats.available, stats.assigned, stats.total, stats.utilization) == (0, 0, 0, "0.0%")


class TestCronSecret:
    def test_matching_secret_passes(self):
        verify_cron_secret("s3cret", "s3cret")

    @pytest.mark.parametrize("expected,provided", [("s3cret", "nope"), ("s3cret", None), (None, "s3cret")])
    def test_bad_secret_raises(self, expected, provided):
        with pytest.raises(CronAuthError):
            verify_cron_secret(expected, provided)
