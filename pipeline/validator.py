"""Lead validation: structural, fraud and history checks on a raw submission.

validate_structure() is pure and covers everything that only needs the
submission itself. validate() adds the checks that look at recent history
(duplicates, per-IP rate limit). Neither raises for bad input: every problem
becomes a human-readable string on ValidationResult.errors.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.repositories import leads as leads_repo
from pipeline import policy
from pipeline.clock import start_of_day
from schemas.lead import LeadSubmission, ValidationResult

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NAME_CHARS_RE = re.compile(r"^[a-zA-Z\s'-]+$")
_ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
_NAME_PLACEHOLDERS = [re.compile(p, re.IGNORECASE) for p in policy.NAME_PLACEHOLDER_PATTERNS]
_ADDRESS_PLACEHOLDERS = [re.compile(p, re.IGNORECASE) for p in policy.ADDRESS_PLACEHOLDER_PATTERNS]


def normalize_phone(phone: str) -> str:
    """Digits only, with a leading US country code dropped from 11-digit numbers."""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    return digits


def missing_required_fields(submission: LeadSubmission) -> list[str]:
    errors = []
    for field, label in policy.REQUIRED_FIELDS.items():
        value = getattr(submission, field)
        if value is None or not str(value).strip():
            errors.append(f"{label} is required")
    return errors


def check_name(value: str, label: str) -> list[str]:
    name = (value or "").strip()
    if not name:
        return [f"{label} is required"]
    if any(ch.isdigit() for ch in name):
        return [f"{label} cannot contain numbers"]
    if len(name) < 2:
        return [f"{label} must be at least 2 characters"]
    if len(name) > 50:
        return [f"{label} is too long"]
    if not _NAME_CHARS_RE.match(name):
        return [f"{label} contains invalid characters"]
    if any(p.search(name) for p in _NAME_PLACEHOLDERS):
        return [f"{label} appears invalid"]
    return []


def check_email(value: str) -> tuple[list[str], bool]:
    """Returns (errors, is_work_email)."""
    email = (value or "").strip().lower()
    if not _EMAIL_RE.match(email):
        return ["Invalid email format"], False

    domain = email.rsplit("@", 1)[1]
    if domain in policy.DISPOSABLE_EMAIL_DOMAINS:
        return ["Disposable email not allowed"], False
    if domain in policy.EMAIL_DOMAIN_TYPOS:
        return [f"Did you mean {policy.EMAIL_DOMAIN_TYPOS[domain]}?"], False

    is_free = any(provider in domain for provider in policy.FREE_EMAIL_PROVIDERS)
    return [], not is_free


def check_phone(value: str, state: Optional[str]) -> tuple[list[str], bool, str]:
    """Returns (errors, is_local, normalized 10-digit phone)."""
    raw_digits = re.sub(r"\D", "", value or "")
    if len(raw_digits) < 10:
        return ["Phone number must be at least 10 digits"], False, raw_digits
    if len(raw_digits) > 11:
        return ["Phone number too long"], False, raw_digits
    if len(raw_digits) == 11 and not raw_digits.startswith("1"):
        return ["Invalid country code"], False, raw_digits

    digits = normalize_phone(raw_digits)
    if digits in policy.FAKE_PHONE_NUMBERS or len(set(digits)) == 1:
        return ["Phone number appears to be fake"], False, digits

    area_code = digits[:3]
    if area_code in policy.INVALID_AREA_CODES or area_code.startswith("1"):
        return ["Invalid area code"], False, digits

    local_codes = policy.STATE_AREA_CODES.get((state or "").strip().upper(), frozenset())
    return [], area_code in local_codes, digits


def check_zip(value: str, state: Optional[str]) -> list[str]:
    zip_code = (value or "").strip()
    if not _ZIP_RE.match(zip_code):
        return ["ZIP code must be 5 digits (or 5+4 format)"]

    state_code = (state or "").strip().upper()
    prefixes = policy.STATE_ZIP_PREFIXES.get(state_code)
    if prefixes is not None and zip_code[:3] not in prefixes:
        return [f"ZIP code {zip_code} doesn't match state {state_code}"]
    return []


def check_address(value: str) -> list[str]:
    address = (value or "").strip()
    if len(address) < 3:
        return ["Address is required"]
    if any(p.search(address) for p in _ADDRESS_PLACEHOLDERS):
        return ["Please enter a valid address"]
    return []


def check_budget_property(budget_range: str, property_type: str) -> list[str]:
    message = policy.INVALID_BUDGET_PROPERTY.get((budget_range, property_type))
    return [message] if message else []


def check_completion_time(seconds: Optional[float]) -> list[str]:
    if seconds is not None and seconds < policy.MIN_FORM_COMPLETION_SECONDS:
        return ["Form completed too quickly - please slow down"]
    return []


def validate_structure(submission: LeadSubmission) -> ValidationResult:
    """Every check that needs only the submission. Errors aggregate."""
    missing = missing_required_fields(submission)
    if missing:
        return ValidationResult(valid=False, errors=missing)

    errors: list[str] = []
    flags: list[str] = []

    errors += check_name(submission.first_name, "First name")
    errors += check_name(submission.last_name, "Last name")

    email_errors, work_email = check_email(submission.email)
    errors += email_errors
    if work_email:
        flags.append("work_email")

    phone_errors, local_phone, phone = check_phone(submission.phone, submission.state)
    errors += phone_errors
    if local_phone:
        flags.append("local_phone")

    errors += check_zip(submission.zip, submission.state)
    errors += check_address(submission.address)
    errors += check_budget_property(submission.budget_range, submission.property_type)
    errors += check_completion_time(submission.form_completion_time)

    return ValidationResult(
        valid=not errors,
        errors=errors,
        quality_flags=flags,
        normalized_phone=phone if not phone_errors else None,
    )


async def validate(
    session: AsyncSession,
    submission: LeadSubmission,
    now: Optional[datetime] = None,
) -> ValidationResult:
    """Full validation: structural checks plus duplicate and rate-limit history."""
    now = now or datetime.now(timezone.utc)
    result = validate_structure(submission)
    if not result.valid and missing_required_fields(submission):
        return result

    errors = list(result.errors)

    phone = result.normalized_phone or normalize_phone(submission.phone)
    duplicate = await leads_repo.find_recent_duplicate(
        session,
        email=submission.email.strip(),
        phone=phone,
        since=now - policy.DUPLICATE_WINDOW,
    )
    if duplicate == "email":
        errors.append("You already submitted a request with this email in the last 7 days")
    elif duplicate == "phone":
        errors.append("You already submitted a request with this phone number in the last 7 days")

    if submission.ip_address:
        today = await leads_repo.count_from_ip_since(
            session, submission.ip_address, start_of_day(now)
        )
        if today >= policy.MAX_SUBMISSIONS_PER_IP_PER_DAY:
            errors.append("Too many submissions from your location today")

    if errors:
        logger.info(
            "Lead rejected by validation: %d error(s)",
            len(errors),
            extra={"stage": "validator", "errors": errors},
        )
    return result.model_copy(update={"valid": not errors, "errors": errors})
