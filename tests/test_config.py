"""Tests for Settings.from_env."""
from decimal import Decimal

import pytest

from config import Settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "LEAD_COST_PRO", "LEAD_CAP_STARTER", "LEAD_CAP_ELITE", "DB_POOL_SIZE",
        "MINIMUM_CREDIT_BALANCE", "CRON_SECRET", "PUBLIC_BASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@localhost/leads")
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings.from_env()
    assert settings.lead_cost_pro == Decimal("175.00")
    assert settings.lead_cap_starter == 15
    assert settings.lead_cap_elite is None
    assert settings.minimum_credit_balance == Decimal("75.00")
    assert settings.call_webhook_url == "http://localhost:8000/api/webhooks/twilio/call-status"


def test_lead_costs_are_given_in_cents(clean_env):
    clean_env.setenv("LEAD_COST_PRO", "19950")
    assert Settings.from_env().lead_cost_pro == Decimal("199.50")


def test_zero_cap_means_unlimited(clean_env):
    clean_env.setenv("LEAD_CAP_STARTER", "0")
    clean_env.setenv("LEAD_CAP_ELITE", "100")
    settings = Settings.from_env()
    assert settings.lead_cap_starter is None
    assert settings.lead_cap_elite == 100


def test_bad_integer_falls_back(clean_env):
    clean_env.setenv("DB_POOL_SIZE", "lots")
    assert Settings.from_env().db_pool_size == 5


def test_database_url_is_required(clean_env):
    clean_env.delenv("DATABASE_URL")
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        Settings.from_env()
