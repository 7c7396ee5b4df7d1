"""Unit tests for twilio_tools: SMS, TwiML and webhook signatures."""
import xml.etree.ElementTree as ET
from unittest.mock import MagicMock, patch

from tools.twilio_tools import (
    compute_signature,
    empty_twiml,
    forward_call_twiml,
    reject_call_twiml,
    validate_signature,
)


TWILIO_MODULE = "tools.twilio_tools"


class TestTwilioSendSms:
    @patch(f"{TWILIO_MODULE}.requests.post")
    def test_sends_sms(self, mock_post):
        mock_resp = MagicMock()
        mock_resp.raise_for_status.return_value = None
        mock_resp.json.return_value = {"sid": "SM1", "status": "queued"}
        mock_post.return_value = mock_resp

        from tools.twilio_tools import twilio_send_sms
        result = twilio_send_sms("+13105550199", "hello", "+13105550000", "AC1", "tok")

        assert result == {"sid": "SM1", "status": "queued", "to": "+13105550199"}
        assert mock_post.call_args.args[0].endswith("/Accounts/AC1/Messages.json")
        assert mock_post.call_args.kwargs["data"]["From"] == "+13105550000"

    @patch(f"{TWILIO_MODULE}.requests.post")
    def test_handles_error_gracefully(self, mock_post):
        mock_post.side_effect = RuntimeError("network error")

        from tools.twilio_tools import twilio_send_sms
        result = twilio_send_sms("+13105550199", "hello", "+13105550000", "AC1", "tok")

        assert result["sid"] is None
        assert "error" in result


class TestTwiml:
    def _parse(self, twiml):
        assert twiml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        return ET.fromstring(twiml.split("?>", 1)[1])

    def test_reject_says_and_hangs_up(self):
        root = self._parse(reject_call_twiml("Not assigned."))
        assert [child.tag for child in root] == ["Say", "Hangup"]
        assert root.find("Say").text == "Not assigned."

    def test_forward_records_and_dials_customer(self):
        root = self._parse(forward_call_twiml("3105550142", "https://x/cb"))
        dial = root.find("Dial")
        assert dial.get("record") == "record-from-answer"
        assert dial.get("recordingStatusCallback") == "https://x/cb"
        assert dial.find("Number").text == "3105550142"

    def test_empty(self):
        assert len(self._parse(empty_twiml())) == 0


class TestSignature:
    URL = "https://leads.example.com/api/webhooks/twilio/call-status"

    def test_round_trip(self):
        params = {"CallSid": "CA1", "To": "+13105550100", "From": "+13105550199"}
        signature = compute_signature("tok", self.URL, params)
        assert validate_signature("tok", self.URL, params, signature)

    def test_parameter_order_does_not_matter(self):
        a = {"To": "+1", "CallSid": "CA1"}
        b = {"CallSid": "CA1", "To": "+1"}
        assert compute_signature("tok", self.URL, a) == compute_signature("tok", self.URL, b)

    def test_tampered_or_missing_signature(self):
        params = {"CallSid": "CA1"}
        signature = compute_signature("tok", self.URL, params)
        assert not validate_signature("tok", self.URL, {"CallSid": "CA2"}, signature)
        assert not validate_signature("other", self.URL, params, signature)
        assert not validate_signature("tok", self.URL, params, None)
