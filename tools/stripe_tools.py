"""Stripe payment tools.

Calls the Stripe REST API directly with form-encoded requests (no official
SDK). Like the other tools, nothing here raises for transport or API errors:
failures come back as a dict with an 'error' key.
"""
import os
from typing import Any, Dict, Optional

import requests


STRIPE_BASE = "https://api.stripe.com/v1"


def _api_key() -> str:
    return os.environ["STRIPE_SECRET_KEY"]


def _error_message(resp: requests.Response) -> str:
    try:
        return resp.json().get("error", {}).get("message") or f"HTTP {resp.status_code}"
    except ValueError:
        return f"HTTP {resp.status_code}"


def stripe_charge_customer(
    customer_id: str,
    payment_method_id: str,
    amount_cents: int,
    description: str,
    metadata: Optional[Dict[str, str]] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """Charge a saved card off-session with a confirmed PaymentIntent.

    Args:
        customer_id: Stripe customer id (cus_...).
        payment_method_id: Saved payment method id (pm_...).
        amount_cents: Amount in US cents.
        description: Statement/dashboard description.
        metadata: Extra key/value pairs stored on the PaymentIntent.

    Returns:
        Dict with 'charge_id' and 'status', or 'charge_id': None and 'error'.
    """
    try:
        form = {
            "amount": int(amount_cents),
            "currency": "usd",
            "customer": customer_id,
            "payment_method": payment_method_id,
            "off_session": "true",
            "confirm": "true",
            "description": description,
        }
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = str(value)

        resp = requests.post(
            f"{STRIPE_BASE}/payment_intents",
            data=form,
            auth=(api_key or _api_key(), ""),
            timeout=30,
        )
        if resp.status_code >= 400:
            return {"charge_id": None, "error": _error_message(resp)}

        intent = resp.json()
        if intent.get("status") != "succeeded":
            return {
                "charge_id": intent.get("id"),
                "status": intent.get("status"),
                "error": f"Payment status: {intent.get('status')}",
            }
        return {"charge_id": intent["id"], "status": "succeeded"}
    except Exception as exc:
        return {"charge_id": None, "error": str(exc)}
