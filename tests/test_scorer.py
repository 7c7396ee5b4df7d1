"""Tests for the additive lead scorer."""
from decimal import Decimal

import pytest

from pipeline import scorer
from schemas.lead import LeadSubmission

from conftest import lead_payload


@pytest.mark.parametrize(
    "points,category",
    [
        (200, "PLATINUM"),
        (140, "PLATINUM"),
        (139, "GOLD"),
        (100, "GOLD"),
        (99, "SILVER"),
        (60, "SILVER"),
        (59, "BRONZE"),
        (40, "BRONZE"),
        (39, "NURTURE"),
        (0, "NURTURE"),
    ],
)
def test_category_boundaries(points, category):
    assert scorer.categorize(points).category == category


def test_category_prices():
    assert scorer.categorize(150).price == Decimal("250.00")
    assert scorer.categorize(100).price == Decimal("175.00")
    assert scorer.categorize(60).price == Decimal("125.00")
    assert scorer.categorize(40).price == Decimal("85.00")
    assert scorer.categorize(10).price == Decimal("0.00")


def test_confidence_is_capped():
    assert scorer.confidence(0, []) == 0
    assert scorer.confidence(200, []) == 90
    flags = ["work_email", "detailed_description", "local_phone", "thoughtful_completion"]
    assert scorer.confidence(200, flags) == 95
    # Repeated flags count once
    assert scorer.confidence(100, ["work_email", "work_email"]) == 53


def test_description_points():
    assert scorer.description_points("x" * 101) == (10, ["detailed_description"])
    assert scorer.description_points("x" * 100) == (5, [])
    assert scorer.description_points("x" * 50) == (0, [])
    assert scorer.description_points("AC died, need help") == (5, ["urgency_keywords"])
    assert scorer.description_points(None) == (0, [])


@pytest.mark.parametrize(
    "seconds,expected",
    [(None, 0), (45, 0), (60, 5), (300, 5), (301, 2)],
)
def test_completion_points(seconds, expected):
    assert scorer.completion_points(seconds)[0] == expected


def test_platinum_submission():
    result = scorer.score(LeadSubmission(**lead_payload()), ["local_phone"])
    # 50 service + 40 timeline + 40 budget + 30 property + 5 local + 5 thoughtful
    assert result.score == 170
    assert result.category == "PLATINUM"
    assert result.price == Decimal("250.00")
    assert result.confidence == 89
    assert result.quality_flags == ["local_phone", "thoughtful_completion"]


def test_work_email_and_optional_fields_add_points():
    base = scorer.score(LeadSubmission(**lead_payload(form_completion_time=None)))
    richer = scorer.score(
        LeadSubmission(
            **lead_payload(
                form_completion_time=None,
                property_age="20+ years",
                system_issue="Complete failure",
            )
        ),
        ["work_email"],
    )
    assert richer.score - base.score == 10 + 10 + 15


def test_nurture_submission():
    result = scorer.score(
        LeadSubmission(
            **lead_payload(
                service_type="Just Getting Quotes",
                timeline="Just researching",
                budget_range="Under $500",
                property_type="Apartment (rent)",
                form_completion_time=None,
            )
        )
    )
    assert result.score == 26
    assert result.category == "NURTURE"
    assert result.price == Decimal("0.00")


def test_unknown_option_values_score_zero():
    result = scorer.score(
        LeadSubmission(
            **lead_payload(
                service_type="Pool cleaning",
                timeline="Someday",
                budget_range="Unknown",
                property_type="Boat",
                form_completion_time=None,
            )
        )
    )
    assert result.score == 0
