"""Runtime settings for the lead marketplace.

Values come from the process environment (a local .env is loaded first).
Static business policy (score tables, category thresholds, response windows)
lives in pipeline.policy, not here.

Usage:
    from config import Settings
    settings = Settings.from_env()
"""
import logging
import os
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def _cents_to_dollars(name: str, default_dollars: str) -> Decimal:
    cents = _env_int(name, 0)
    if cents <= 0:
        return Decimal(default_dollars)
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


class Settings(BaseModel):
    database_url: str
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30

    public_base_url: str = "http://localhost:8000"
    cron_secret: Optional[str] = None

    stripe_secret_key: Optional[str] = None
    stripe_price_starter: Optional[str] = None
    stripe_price_pro: Optional[str] = None
    stripe_price_elite: Optional[str] = None

    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None

    sendgrid_api_key: Optional[str] = None
    sendgrid_from_email: str = "support@getcontractornow.com"

    lead_cost_starter: Decimal = Decimal("125.00")
    lead_cost_pro: Decimal = Decimal("175.00")
    lead_cost_elite: Decimal = Decimal("300.00")
    lead_cap_starter: Optional[int] = 15
    lead_cap_pro: Optional[int] = 40
    lead_cap_elite: Optional[int] = None

    minimum_credit_balance: Decimal = Decimal("75.00")
    credit_expiry_days: int = 60
    tracking_number_ttl_days: int = 5
    low_pool_threshold: int = 5

    @property
    def call_webhook_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/api/webhooks/twilio/call-status"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from os.environ. DATABASE_URL is mandatory."""
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise RuntimeError(
                "DATABASE_URL environment variable is not set. "
                "Copy .env.example to .env and set your database credentials."
            )

        def _cap(name: str, default: Optional[int]) -> Optional[int]:
            # 0 means unlimited
            value = _env_int(name, -1)
            if value < 0:
                return default
            return value or None

        minimum = os.environ.get("MINIMUM_CREDIT_BALANCE", "").strip()
        return cls(
            database_url=database_url,
            db_pool_size=_env_int("DB_POOL_SIZE", 5),
            db_max_overflow=_env_int("DB_MAX_OVERFLOW", 10),
            db_pool_timeout=_env_int("DB_POOL_TIMEOUT", 30),
            public_base_url=os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000"),
            cron_secret=os.environ.get("CRON_SECRET") or None,
            stripe_secret_key=os.environ.get("STRIPE_SECRET_KEY") or None,
            stripe_price_starter=os.environ.get("STRIPE_PRICE_STARTER") or None,
            stripe_price_pro=os.environ.get("STRIPE_PRICE_PRO") or None,
            stripe_price_elite=os.environ.get("STRIPE_PRICE_ELITE") or None,
            twilio_account_sid=os.environ.get("TWILIO_ACCOUNT_SID") or None,
            twilio_auth_token=os.environ.get("TWILIO_AUTH_TOKEN") or None,
            twilio_phone_number=os.environ.get("TWILIO_PHONE_NUMBER") or None,
            sendgrid_api_key=os.environ.get("SENDGRID_API_KEY") or None,
            sendgrid_from_email=os.environ.get(
                "SENDGRID_FROM_EMAIL", "support@getcontractornow.com"
            ),
            lead_cost_starter=_cents_to_dollars("LEAD_COST_STARTER", "125.00"),
            lead_cost_pro=_cents_to_dollars("LEAD_COST_PRO", "175.00"),
            lead_cost_elite=_cents_to_dollars("LEAD_COST_ELITE", "300.00"),
            lead_cap_starter=_cap("LEAD_CAP_STARTER", 15),
            lead_cap_pro=_cap("LEAD_CAP_PRO", 40),
            lead_cap_elite=_cap("LEAD_CAP_ELITE", None),
            minimum_credit_balance=Decimal(minimum) if minimum else Decimal("75.00"),
            credit_expiry_days=_env_int("CREDIT_EXPIRY_DAYS", 60),
            tracking_number_ttl_days=_env_int("TRACKING_NUMBER_TTL_DAYS", 5),
            low_pool_threshold=_env_int("LOW_POOL_THRESHOLD", 5),
        )
