"""Telephony webhook payloads and responses."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CallEvent(BaseModel):
    """A Twilio voice webhook, call setup or status callback.

    Field names follow the provider's form-encoded parameter names.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True, populate_by_name=True, extra="ignore")

    call_sid: str = Field(alias="CallSid", min_length=1)
    to: str = Field(default="", alias="To")
    from_: str = Field(default="", alias="From")
    call_status: str = Field(default="", alias="CallStatus")
    call_duration: Optional[str] = Field(default=None, alias="CallDuration")
    direction: Optional[str] = Field(default=None, alias="Direction")
    recording_url: Optional[str] = Field(default=None, alias="RecordingUrl")
    recording_sid: Optional[str] = Field(default=None, alias="RecordingSid")

    @property
    def duration_seconds(self) -> Optional[int]:
        try:
            return int(self.call_duration) if self.call_duration else None
        except ValueError:
            return None


class WebhookResponse(BaseModel):
    status_code: int = 200
    content_type: str = "text/xml"
    body: str = ""
