"""Lead submission, validation, scoring and submission-response schemas."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class LeadSubmission(BaseModel):
    """The flat field set posted by the customer form.

    Everything is optional here; presence of the required fields is a
    validation rule, so that a missing field becomes a readable reason
    instead of a schema error.
    """

    model_config = ConfigDict(
        coerce_numbers_to_str=True,
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    service_type: Optional[str] = None
    timeline: Optional[str] = None
    budget_range: Optional[str] = None
    property_type: Optional[str] = None
    service_description: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("service_description", "description"),
    )
    property_age: Optional[str] = None
    existing_system: Optional[str] = None
    system_issue: Optional[str] = None

    preferred_contact_time: Optional[str] = None
    preferred_contact_method: Optional[str] = None
    referral_source: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None

    form_completion_time: Optional[float] = None
    ip_address: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ip_address", "ip")
    )
    user_agent: Optional[str] = None


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    quality_flags: List[str] = Field(default_factory=list)
    normalized_phone: Optional[str] = None


class ScoreResult(BaseModel):
    score: int = Field(ge=0)
    category: str
    price: Decimal
    confidence: int = Field(ge=0, le=95)
    quality_flags: List[str] = Field(default_factory=list)


class AssignedContractor(BaseModel):
    contractor_id: UUID
    business_name: str
    phone: str
    response_deadline: datetime
    tracking_number: Optional[str] = None


class SubmissionResponse(BaseModel):
    """What the submitter sees: a rejection list, or an acknowledgment."""

    success: bool
    status: str
    errors: List[str] = Field(default_factory=list)
    lead_id: Optional[UUID] = None
    category: Optional[str] = None
    score: int = 0
    warning: Optional[str] = None
    contractor: Optional[AssignedContractor] = None
