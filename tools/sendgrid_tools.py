"""SendGrid email tools.

Calls the SendGrid v3 REST API directly (no official SDK).
"""
import os
from typing import Any, Dict, Optional

import requests


SENDGRID_BASE = "https://api.sendgrid.com/v3"


def _api_key() -> str:
    return os.environ["SENDGRID_API_KEY"]


def sendgrid_send_email(
    to_email: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    from_email: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """Send a single transactional email.

    Returns:
        Dict with 'sent': True and 'status_code', or 'sent': False and 'error'.
    """
    try:
        content = []
        if text:
            content.append({"type": "text/plain", "value": text})
        content.append({"type": "text/html", "value": html})
        payload = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": from_email or os.environ.get("SENDGRID_FROM_EMAIL", "support@getcontractornow.com")},
            "subject": subject,
            "content": content,
        }
        resp = requests.post(
            f"{SENDGRID_BASE}/mail/send",
            json=payload,
            headers={"Authorization": f"Bearer {api_key or _api_key()}"},
            timeout=10,
        )
        resp.raise_for_status()
        return {"sent": True, "status_code": resp.status_code, "to": to_email}
    except Exception as exc:
        return {"sent": False, "to": to_email, "error": str(exc)}
