"""Twilio tools: outbound SMS, TwiML call-control markup and webhook signatures.

Calls the Twilio REST API directly (no official SDK).
"""
import base64
import hashlib
import hmac
import os
import xml.etree.ElementTree as ET
from typing import Any, Dict, Mapping, Optional

import requests


TWILIO_BASE = "https://api.twilio.com/2010-04-01"
VOICE = "alice"


def _credentials() -> tuple[str, str]:
    return os.environ["TWILIO_ACCOUNT_SID"], os.environ["TWILIO_AUTH_TOKEN"]


def twilio_send_sms(
    to: str,
    body: str,
    from_number: Optional[str] = None,
    account_sid: Optional[str] = None,
    auth_token: Optional[str] = None,
) -> Dict[str, Any]:
    """Send an SMS.

    Returns:
        Dict with 'sid' and 'status', or 'sid': None and 'error'.
    """
    try:
        if account_sid is None or auth_token is None:
            account_sid, auth_token = _credentials()
        resp = requests.post(
            f"{TWILIO_BASE}/Accounts/{account_sid}/Messages.json",
            data={
                "To": to,
                "From": from_number or os.environ.get("TWILIO_PHONE_NUMBER", ""),
                "Body": body,
            },
            auth=(account_sid, auth_token),
            timeout=10,
        )
        resp.raise_for_status()
        data = resp.json()
        return {"sid": data.get("sid"), "status": data.get("status"), "to": to}
    except Exception as exc:
        return {"sid": None, "to": to, "error": str(exc)}


# ---------------------------------------------------------------------------
# TwiML
# ---------------------------------------------------------------------------


def _render(response: ET.Element) -> str:
    return '<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(response, encoding="unicode")


def reject_call_twiml(message: str) -> str:
    """Speak `message` and hang up."""
    response = ET.Element("Response")
    say = ET.SubElement(response, "Say", voice=VOICE)
    say.text = message
    ET.SubElement(response, "Hangup")
    return _render(response)


def forward_call_twiml(customer_phone: str, callback_url: str) -> str:
    """Connect the caller to `customer_phone`, recording from answer."""
    response = ET.Element("Response")
    say = ET.SubElement(response, "Say", voice=VOICE)
    say.text = "Connecting your call, please wait."
    dial = ET.SubElement(
        response,
        "Dial",
        record="record-from-answer",
        recordingStatusCallback=callback_url,
    )
    number = ET.SubElement(dial, "Number")
    number.text = customer_phone
    return _render(response)


def empty_twiml() -> str:
    return _render(ET.Element("Response"))


# ---------------------------------------------------------------------------
# Request signatures
# ---------------------------------------------------------------------------


def compute_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    """X-Twilio-Signature: base64(HMAC-SHA1(url + sorted key/value pairs))."""
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), payload.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def validate_signature(
    auth_token: str, url: str, params: Mapping[str, str], signature: Optional[str]
) -> bool:
    if not signature:
        return False
    expected = compute_signature(auth_token, url, params)
    return hmac.compare_digest(expected, signature)
