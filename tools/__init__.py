from .stripe_tools import stripe_charge_customer
from .sendgrid_tools import sendgrid_send_email
from .twilio_tools import (
    twilio_send_sms,
    reject_call_twiml,
    forward_call_twiml,
    empty_twiml,
    compute_signature,
    validate_signature,
)

__all__ = [
    "stripe_charge_customer",
    "sendgrid_send_email",
    "twilio_send_sms", "reject_call_twiml", "forward_call_twiml", "empty_twiml",
    "compute_signature", "validate_signature",
]
