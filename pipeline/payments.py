"""Payment gateway collaborator: "charge this amount, get success or failure"."""
import asyncio
import logging
from decimal import Decimal
from typing import Optional

from schemas.billing import ChargeResult
from tools.stripe_tools import stripe_charge_customer

logger = logging.getLogger(__name__)


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


class StripePaymentGateway:
    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    async def charge(
        self,
        customer_id: Optional[str],
        payment_method_id: Optional[str],
        amount: Decimal,
        description: str,
        metadata: Optional[dict] = None,
    ) -> ChargeResult:
        if not self.api_key:
            return ChargeResult(success=False, error_message="Payment gateway not configured")
        if not customer_id or not payment_method_id:
            return ChargeResult(success=False, error_message="No payment method on file")

        result = await asyncio.to_thread(
            stripe_charge_customer,
            customer_id,
            payment_method_id,
            to_cents(amount),
            description,
            metadata,
            self.api_key,
        )
        if result.get("error"):
            return ChargeResult(
                success=False,
                charge_id=result.get("charge_id"),
                error_message=result["error"],
            )
        return ChargeResult(success=True, charge_id=result["charge_id"])
