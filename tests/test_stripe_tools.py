"""Unit tests for stripe_tools: off-session card charges."""
from unittest.mock import MagicMock, patch

import pytest


STRIPE_MODULE = "tools.stripe_tools"


def _response(status_code, payload):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


class TestStripeChargeCustomer:
    @patch(f"{STRIPE_MODULE}.requests.post")
    def test_successful_charge(self, mock_post):
        mock_post.return_value = _response(200, {"id": "pi_123", "status": "succeeded"})

        from tools.stripe_tools import stripe_charge_customer
        result = stripe_charge_customer(
            "cus_1", "pm_1", 25000, "PLATINUM lead", metadata={"lead_id": "abc"}, api_key="sk_test"
        )

        assert result == {"charge_id": "pi_123", "status": "succeeded"}
        call_kwargs = mock_post.call_args.kwargs
        assert call_kwargs["data"]["amount"] == 25000
        assert call_kwargs["data"]["customer"] == "cus_1"
        assert call_kwargs["data"]["metadata[lead_id]"] == "abc"
        assert call_kwargs["data"]["off_session"] == "true"
        assert call_kwargs["auth"] == ("sk_test", "")

    @patch(f"{STRIPE_MODULE}.requests.post")
    def test_card_declined(self, mock_post):
        mock_post.return_value = _response(402, {"error": {"message": "Your card was declined."}})

        from tools.stripe_tools import stripe_charge_customer
        result = stripe_charge_customer("cus_1", "pm_1", 25000, "lead", api_key="sk_test")

        assert result == {"charge_id": None, "error": "Your card was declined."}

    @patch(f"{STRIPE_MODULE}.requests.post")
    def test_incomplete_intent_is_an_error(self, mock_post):
        mock_post.return_value = _response(200, {"id": "pi_9", "status": "requires_action"})

        from tools.stripe_tools import stripe_charge_customer
        result = stripe_charge_customer("cus_1", "pm_1", 100, "lead", api_key="sk_test")

        assert result["charge_id"] == "pi_9"
        assert result["error"] == "Payment status: requires_action"

    @patch(f"{STRIPE_MODULE}.requests.post")
    @patch(f"{STRIPE_MODULE}._api_key", return_value="sk_env")
    def test_handles_error_gracefully(self, mock_key, mock_post):
        mock_post.side_effect = RuntimeError("network error")

        from tools.stripe_tools import stripe_charge_customer
        result = stripe_charge_customer("cus_1", "pm_1", 100, "lead")

        assert result["charge_id"] is None
        assert "network error" in result["error"]


class TestStripePaymentGateway:
    @pytest.mark.asyncio
    async def test_not_configured(self):
        from pipeline.payments import StripePaymentGateway
        result = await StripePaymentGateway(None).charge("cus_1", "pm_1", 250, "lead")
        assert not result.success
        assert result.error_message == "Payment gateway not configured"

    @pytest.mark.asyncio
    async def test_missing_card(self):
        from pipeline.payments import StripePaymentGateway
        result = await StripePaymentGateway("sk_test").charge("cus_1", None, 250, "lead")
        assert result.error_message == "No payment method on file"

    @pytest.mark.asyncio
    @patch("pipeline.payments.stripe_charge_customer", return_value={"charge_id": "pi_1", "status": "succeeded"})
    async def test_amount_is_sent_in_cents(self, mock_charge):
        from decimal import Decimal
        from pipeline.payments import StripePaymentGateway

        result = await StripePaymentGateway("sk_test").charge("cus_1", "pm_1", Decimal("175.50"), "lead")

        assert result.success
        assert result.charge_id == "pi_1"
        assert mock_charge.call_args.args[2] == 17550
