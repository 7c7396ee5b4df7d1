"""Unit tests for sendgrid_tools and the notifier built on it."""
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from config import Settings
from db.models import Contractor, Lead
from pipeline.notifications import Notifier, format_phone


SENDGRID_MODULE = "tools.sendgrid_tools"


class TestSendgridSendEmail:
    @patch(f"{SENDGRID_MODULE}.requests.post")
    def test_sends_email(self, mock_post):
        mock_resp = MagicMock()
        mock_resp.status_code = 202
        mock_resp.raise_for_status.return_value = None
        mock_post.return_value = mock_resp

        from tools.sendgrid_tools import sendgrid_send_email
        result = sendgrid_send_email(
            "ops@coolair.example", "New lead", "<p>hi</p>", text="hi",
            from_email="support@example.com", api_key="SG.test",
        )

        assert result["sent"] is True
        payload = mock_post.call_args.kwargs["json"]
        assert payload["personalizations"][0]["to"][0]["email"] == "ops@coolair.example"
        assert payload["from"]["email"] == "support@example.com"
        assert [c["type"] for c in payload["content"]] == ["text/plain", "text/html"]
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer SG.test"

    @patch(f"{SENDGRID_MODULE}.requests.post")
    def test_handles_error_gracefully(self, mock_post):
        mock_post.side_effect = RuntimeError("network error")

        from tools.sendgrid_tools import sendgrid_send_email
        result = sendgrid_send_email("ops@coolair.example", "s", "<p>b</p>", api_key="SG.test")

        assert result["sent"] is False
        assert "error" in result


def test_format_phone():
    assert format_phone("+13105550100") == "(310) 555-0100"
    assert format_phone("12") == "12"
    assert format_phone(None) == ""


class TestNotifier:
    def _contractor(self):
        return Contractor(business_name="Cool Air HVAC", email="ops@coolair.example", phone="3105550199")

    def _lead(self):
        return Lead(
            category="PLATINUM",
            service_type="Emergency Repair",
            timeline="Today/ASAP",
            budget_range="$15,000+",
            customer_city="Beverly Hills",
            customer_state="CA",
            customer_zip="90210",
        )

    @pytest.mark.asyncio
    async def test_unconfigured_channels_do_not_raise(self):
        notifier = Notifier(Settings(database_url="sqlite+aiosqlite://"))
        result = await notifier.send_email("a@b.com", "s", "<p>b</p>")
        assert not result.success
        assert result.error == "Email sender not configured"
        await notifier.lead_assigned(
            self._contractor(), self._lead(), datetime(2026, 3, 4, 15, 20, tzinfo=timezone.utc), "+13105550100"
        )

    @pytest.mark.asyncio
    @patch("pipeline.notifications.twilio_send_sms", return_value={"sid": "SM1"})
    @patch("pipeline.notifications.sendgrid_send_email", return_value={"sent": True})
    async def test_lead_assigned_uses_both_channels(self, mock_email, mock_sms):
        notifier = Notifier(
            Settings(
                database_url="sqlite+aiosqlite://",
                sendgrid_api_key="SG.test",
                twilio_account_sid="AC1",
                twilio_auth_token="tok",
                twilio_phone_number="+13105550000",
            )
        )

        await notifier.lead_assigned(
            self._contractor(), self._lead(), datetime(2026, 3, 4, 15, 20, tzinfo=timezone.utc), "+13105550100"
        )

        subject = mock_email.call_args.args[1]
        assert subject == "New PLATINUM lead: Emergency Repair in Beverly Hills"
        sms_body = mock_sms.call_args.args[1]
        assert "(310) 555-0100" in sms_body
        assert "2026-03-04 15:20 UTC" in sms_body

    @pytest.mark.asyncio
    @patch("pipeline.notifications.sendgrid_send_email", side_effect=RuntimeError("boom"))
    async def test_delivery_errors_are_swallowed(self, mock_email):
        notifier = Notifier(Settings(database_url="sqlite+aiosqlite://", sendgrid_api_key="SG.test"))
        await notifier.low_credit(self._contractor(), Decimal("40.00"), Decimal("50"))
        mock_email.assert_called_once()
