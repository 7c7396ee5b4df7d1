"""Static business policy: scoring tables, category thresholds, matching bars.

These are fixed constants, not configuration. Tier lead costs and monthly
caps are the exception and come from config.Settings.
"""
from datetime import timedelta
from decimal import Decimal
from typing import NamedTuple, Optional


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

# field name -> human label used in "<label> is required"
REQUIRED_FIELDS = {
    "first_name": "First name",
    "last_name": "Last name",
    "email": "Email",
    "phone": "Phone number",
    "address": "Address",
    "city": "City",
    "state": "State",
    "zip": "ZIP code",
    "service_type": "Service type",
    "timeline": "Timeline",
    "budget_range": "Budget range",
    "property_type": "Property type",
}

NAME_PLACEHOLDER_PATTERNS = (
    r"^(asdf|qwer|zxcv|hjkl)",
    r"^(test|fake|demo)",
    r"^(.)\1{3,}",
)

ADDRESS_PLACEHOLDER_PATTERNS = (
    r"^(asdf|qwer|test.*test)",
    r"^(na|n/a|none)$",
)

DISPOSABLE_EMAIL_DOMAINS = frozenset({
    "tempmail.com", "guerrillamail.com", "10minutemail.com", "throwaway.email",
    "mailinator.com", "trashmail.com", "temp-mail.org", "fakeinbox.com",
    "sharklasers.com", "getnada.com", "maildrop.cc", "yopmail.com",
})

EMAIL_DOMAIN_TYPOS = {
    "gmial.com": "gmail.com",
    "gmai.com": "gmail.com",
    "yahooo.com": "yahoo.com",
    "yaho.com": "yahoo.com",
    "hotmial.com": "hotmail.com",
}

FREE_EMAIL_PROVIDERS = ("gmail", "yahoo", "hotmail", "outlook", "aol", "icloud")

FAKE_PHONE_NUMBERS = frozenset({"5555555555", "1234567890", "0000000000", "1111111111"})

INVALID_AREA_CODES = frozenset({"000", "555"})

# Area codes that count as "local" for a lead in the given state.
STATE_AREA_CODES = {
    "CA": frozenset({
        "209", "213", "279", "310", "323", "341", "408", "415", "424", "442",
        "510", "530", "559", "562", "619", "626", "628", "650", "657", "661",
        "669", "707", "714", "747", "760", "805", "818", "820", "831", "840",
        "858", "909", "916", "925", "949", "951",
    }),
    "NY": frozenset({
        "212", "315", "332", "347", "516", "518", "585", "607", "631", "646",
        "680", "716", "718", "838", "845", "914", "917", "929", "934",
    }),
    "TX": frozenset({
        "210", "214", "254", "281", "325", "346", "361", "409", "430", "432",
        "469", "512", "682", "713", "726", "737", "806", "817", "830", "832",
        "903", "915", "936", "940", "945", "956", "972", "979",
    }),
    "FL": frozenset({
        "239", "305", "321", "352", "386", "407", "448", "561", "645", "656",
        "727", "754", "772", "786", "813", "850", "863", "904", "941", "954",
    }),
}


def _prefixes(*ranges: tuple[int, int]) -> frozenset:
    return frozenset(f"{n:03d}" for lo, hi in ranges for n in range(lo, hi + 1))


# Sparse: states missing here skip the ZIP/state consistency check.
STATE_ZIP_PREFIXES = {
    "CA": _prefixes((900, 928), (930, 961)),
    "NY": _prefixes((100, 149)),
    "TX": _prefixes((750, 799), (885, 885)),
    "FL": _prefixes((320, 347)),
}

# (budget_range, property_type) -> rejection message
INVALID_BUDGET_PROPERTY = {
    ("$15,000+", "Apartment (rent)"): "Budget too high for rental apartment",
    ("Under $500", "Commercial property"): "Budget too low for commercial property",
    ("$10,000-$14,999", "Apartment (rent)"): "Budget unusual for rental apartment",
}

MIN_FORM_COMPLETION_SECONDS = 30
DUPLICATE_WINDOW = timedelta(days=7)
MAX_SUBMISSIONS_PER_IP_PER_DAY = 5


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

SERVICE_TYPE_POINTS = {
    "Emergency Repair": 50,
    "System Replacement": 40,
    "HVAC Installation": 35,
    "AC Repair": 30,
    "Heating Repair": 30,
    "Maintenance/Tune-up": 15,
    "Just Getting Quotes": 10,
}

TIMELINE_POINTS = {
    "Today/ASAP": 40,
    "Within 1 week": 30,
    "Within 2 weeks": 25,
    "Within 1 month": 20,
    "1-3 months": 10,
    "Just researching": 5,
}

BUDGET_POINTS = {
    "$15,000+": 40,
    "$10,000-$14,999": 38,
    "$7,000-$9,999": 35,
    "$5,000-$6,999": 32,
    "$3,000-$4,999": 25,
    "$2,000-$2,999": 18,
    "$1,000-$1,999": 12,
    "$500-$999": 6,
    "Under $500": 3,
}

PROPERTY_TYPE_POINTS = {
    "Single-family home (own)": 30,
    "Townhouse (own)": 26,
    "Condo (own)": 24,
    "Multi-family (own)": 22,
    "Commercial property": 20,
    "Apartment (rent)": 8,
}

PROPERTY_AGE_POINTS = {
    "20+ years": 10,
    "10-20 years": 8,
    "5-10 years": 5,
    "0-5 years": 2,
    "Don't know": 0,
}

SYSTEM_ISSUE_POINTS = {
    "Complete failure": 15,
    "Not cooling properly": 12,
    "Not heating properly": 12,
    "Leaking": 10,
    "Strange noises": 8,
    "High energy bills": 5,
    "Other": 3,
}

WORK_EMAIL_POINTS = 10
LOCAL_PHONE_POINTS = 5

DETAILED_DESCRIPTION_CHARS = 100
DETAILED_DESCRIPTION_POINTS = 10
SHORT_DESCRIPTION_CHARS = 50
SHORT_DESCRIPTION_POINTS = 5
URGENCY_KEYWORDS = ("emergency", "urgent", "asap", "immediately", "today", "now", "help")
URGENCY_KEYWORD_POINTS = 5

THOUGHTFUL_COMPLETION_SECONDS = (60, 300)
THOUGHTFUL_COMPLETION_POINTS = 5
SLOW_COMPLETION_POINTS = 2

MAX_SCORE = 200


class CategoryBand(NamedTuple):
    category: str
    min_score: int
    price: Decimal


# Highest first; the first band whose min_score is met wins.
CATEGORY_BANDS = (
    CategoryBand("PLATINUM", 140, Decimal("250.00")),
    CategoryBand("GOLD", 100, Decimal("175.00")),
    CategoryBand("SILVER", 60, Decimal("125.00")),
    CategoryBand("BRONZE", 40, Decimal("85.00")),
    CategoryBand("NURTURE", 0, Decimal("0.00")),
)

CONFIDENCE_SCORE_CAP = 90
CONFIDENCE_FLAG_BONUS = {
    "work_email": 3,
    "detailed_description": 3,
    "local_phone": 2,
    "thoughtful_completion": 2,
}
CONFIDENCE_CAP = 95


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class PerformanceBar(NamedTuple):
    min_rating: float
    min_conversion: float
    max_response_minutes: int


PERFORMANCE_BARS = {
    "PLATINUM": PerformanceBar(4.5, 0.70, 20),
    "GOLD": PerformanceBar(4.0, 0.55, 120),
}

# Worst-case stand-ins for missing metrics
DEFAULT_RATING = 0.0
DEFAULT_CONVERSION = 0.0
DEFAULT_RESPONSE_MINUTES = 999

BASE_PRIORITY = 50
RATING_BONUS = ((4.8, 20), (4.5, 15), (4.0, 10))
CONVERSION_BONUS = ((0.80, 20), (0.70, 15), (0.55, 10))
RESPONSE_BONUS = ((15, 15), (30, 10), (60, 5))
LOAD_BONUS = ((0.3, 15), (0.5, 10), (0.7, 5))
LOAD_DEFAULT_DAILY_CAP = 5
SPECIALIZATION_BONUS = 10

RESPONSE_WINDOWS = {
    "PLATINUM": timedelta(minutes=20),
    "GOLD": timedelta(hours=2),
    "SILVER": timedelta(hours=24),
    "BRONZE": timedelta(hours=48),
}


def response_window(category: str) -> timedelta:
    return RESPONSE_WINDOWS.get(category, RESPONSE_WINDOWS["BRONZE"])


# ---------------------------------------------------------------------------
# Billing / telephony
# ---------------------------------------------------------------------------

QUALIFYING_CALL_SECONDS = 30
CALL_SETUP_STATUSES = frozenset({"", "ringing", "in-progress"})
LOW_CREDIT_THRESHOLDS = (Decimal("100"), Decimal("50"), Decimal("0"))

DEFAULT_TIER_COST = Decimal("175.00")


def tier_lead_cost(settings, tier: Optional[str]) -> Decimal:
    return {
        "starter": settings.lead_cost_starter,
        "pro": settings.lead_cost_pro,
        "elite": settings.lead_cost_elite,
    }.get(tier or "", DEFAULT_TIER_COST)


def tier_monthly_cap(settings, tier: Optional[str]) -> Optional[int]:
    """Leads allowed per calendar month for a tier. None means unlimited, 0 none."""
    caps = {
        "starter": settings.lead_cap_starter,
        "pro": settings.lead_cap_pro,
        "elite": settings.lead_cap_elite,
    }
    if tier not in caps:
        return 0
    return caps[tier]
