"""Lead scorer: additive point model -> category -> price -> confidence.

Pure and deterministic. Takes a submission that already passed validation
plus the quality flags the validator noted (work_email, local_phone).
"""
import logging
from typing import Iterable, Optional

from pipeline import policy
from pipeline.policy import CategoryBand
from schemas.lead import LeadSubmission, ScoreResult

logger = logging.getLogger(__name__)


def description_points(description: Optional[str]) -> tuple[int, list[str]]:
    text = (description or "").strip()
    points = 0
    flags = []
    if len(text) > policy.DETAILED_DESCRIPTION_CHARS:
        points += policy.DETAILED_DESCRIPTION_POINTS
        flags.append("detailed_description")
    elif len(text) > policy.SHORT_DESCRIPTION_CHARS:
        points += policy.SHORT_DESCRIPTION_POINTS

    lowered = text.lower()
    if any(keyword in lowered for keyword in policy.URGENCY_KEYWORDS):
        points += policy.URGENCY_KEYWORD_POINTS
        flags.append("urgency_keywords")
    return points, flags


def completion_points(seconds: Optional[float]) -> tuple[int, list[str]]:
    if seconds is None:
        return 0, []
    low, high = policy.THOUGHTFUL_COMPLETION_SECONDS
    if low <= seconds <= high:
        return policy.THOUGHTFUL_COMPLETION_POINTS, ["thoughtful_completion"]
    if seconds > high:
        return policy.SLOW_COMPLETION_POINTS, []
    return 0, []


def categorize(score: int) -> CategoryBand:
    for band in policy.CATEGORY_BANDS:
        if score >= band.min_score:
            return band
    return policy.CATEGORY_BANDS[-1]


def confidence(score: int, flags: Iterable[str]) -> int:
    base = min(score * 100 // policy.MAX_SCORE, policy.CONFIDENCE_SCORE_CAP)
    bonus = sum(policy.CONFIDENCE_FLAG_BONUS.get(flag, 0) for flag in set(flags))
    return max(0, min(base + bonus, policy.CONFIDENCE_CAP))


def score(submission: LeadSubmission, quality_flags: Iterable[str] = ()) -> ScoreResult:
    flags = list(dict.fromkeys(quality_flags))

    points = policy.SERVICE_TYPE_POINTS.get(submission.service_type, 0)
    points += policy.TIMELINE_POINTS.get(submission.timeline, 0)
    points += policy.BUDGET_POINTS.get(submission.budget_range, 0)
    points += policy.PROPERTY_TYPE_POINTS.get(submission.property_type, 0)

    if "work_email" in flags:
        points += policy.WORK_EMAIL_POINTS
    if "local_phone" in flags:
        points += policy.LOCAL_PHONE_POINTS

    points += policy.PROPERTY_AGE_POINTS.get(submission.property_age or "", 0)
    points += policy.SYSTEM_ISSUE_POINTS.get(submission.system_issue or "", 0)

    desc_points, desc_flags = description_points(submission.service_description)
    points += desc_points
    flags += desc_flags

    time_points, time_flags = completion_points(submission.form_completion_time)
    points += time_points
    flags += time_flags

    band = categorize(points)
    result = ScoreResult(
        score=points,
        category=band.category,
        price=band.price,
        confidence=confidence(points, flags),
        quality_flags=flags,
    )
    logger.debug("Scored lead: %d -> %s", result.score, result.category)
    return result
