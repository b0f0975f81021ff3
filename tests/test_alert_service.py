import asyncio
from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest

from app.services import alert_service
from app.services.alert_service import format_alert, send_alert, send_alert_async


@pytest.fixture
def configured():
    with patch.object(alert_service.settings, "alert_bot_token", "test-token"), patch.object(
        alert_service.settings, "alert_chat_id", "test-chat"
    ):
        yield


@pytest.fixture
def mock_client():
    with patch("app.services.alert_service.httpx.Client") as mock_client_class:
        client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = client
        response = Mock()
        response.status_code = 200
        client.post.return_value = response
        yield client


class TestFormatAlert:
    def test_includes_level_and_emoji(self):
        text = format_alert("CRITICAL", "Guide not delivered after payment")

        assert text.startswith("🔥 *ColorBot CRITICAL*")
        assert "Guide not delivered after payment" in text

    def test_includes_context_block(self):
        text = format_alert("ERROR", "Message delivery failed", {"user_id": "919876543210"})

        assert "user_id: 919876543210" in text

    def test_unknown_level_gets_default_emoji(self):
        assert format_alert("DEBUG", "x").startswith("📢")


class TestSendAlert:
    def test_returns_false_when_not_configured(self):
        with patch.object(alert_service.settings, "alert_bot_token", None):
            assert send_alert("ERROR", "Test message") is False

    def test_sends_alert_to_telegram(self, configured, mock_client):
        result = send_alert("ERROR", "Test error message")

        assert result is True
        mock_client.post.assert_called_once()
        call_args = mock_client.post.call_args
        assert call_args[0][0] == "https://api.telegram.org/bottest-token/sendMessage"
        json_data = call_args[1]["json"]
        assert json_data["chat_id"] == "test-chat"
        assert "❌" in json_data["text"]
        assert "ERROR" in json_data["text"]

    def test_includes_context_in_message(self, configured, mock_client):
        send_alert("ERROR", "Test message", {"order_id": "order_123"})

        json_data = mock_client.post.call_args[1]["json"]
        assert "order_id" in json_data["text"]
        assert "order_123" in json_data["text"]

    def test_returns_false_on_telegram_error(self, configured, mock_client):
        mock_client.post.return_value.status_code = 400

        assert send_alert("ERROR", "Test message") is False

    def test_returns_false_on_network_error(self, configured, mock_client):
        mock_client.post.side_effect = httpx.ConnectError("Network error")

        assert send_alert("ERROR", "Test message") is False


class TestSendAlertAsync:
    def test_delegates_to_send_alert(self):
        with patch("app.services.alert_service.send_alert", return_value=True) as mock_send:
            result = asyncio.run(send_alert_async("WARNING", "Watchdog fired", {"count": 2}))

        assert result is True
        mock_send.assert_called_once_with("WARNING", "Watchdog fired", {"count": 2})
