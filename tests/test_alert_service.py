import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import httpx

from funnelbot.services.alert_service import alert_error, send_alert

CONFIGURED = SimpleNamespace(alert_bot_token="test-token", alert_chat_id="test-chat")
UNCONFIGURED = SimpleNamespace(alert_bot_token=None, alert_chat_id=None)


def _client_returning(status_code):
    mock_client = MagicMock()
    mock_client.post = AsyncMock(return_value=Mock(status_code=status_code))
    mock_client_class = MagicMock()
    mock_client_class.return_value.__aenter__.return_value = mock_client
    return mock_client_class, mock_client


class TestSendAlert:
    @patch("funnelbot.services.alert_service.settings", UNCONFIGURED)
    def test_returns_false_when_not_configured(self):
        assert asyncio.run(send_alert("ERROR", "Test message")) is False

    @patch("funnelbot.services.alert_service.settings", CONFIGURED)
    def test_sends_alert_to_telegram(self):
        mock_client_class, mock_client = _client_returning(200)
        with patch("funnelbot.services.alert_service.httpx.AsyncClient", mock_client_class):
            result = asyncio.run(send_alert("ERROR", "Test error message", {"contact": "51999@c.us"}))

        assert result is True
        call_args = mock_client.post.call_args
        assert "api.telegram.org/bottest-token" in call_args[0][0]
        json_data = call_args[1]["json"]
        assert json_data["chat_id"] == "test-chat"
        assert "ERROR" in json_data["text"]
        assert "51999@c.us" in json_data["text"]

    @patch("funnelbot.services.alert_service.settings", CONFIGURED)
    def test_returns_false_on_telegram_error(self):
        mock_client_class, _ = _client_returning(400)
        with patch("funnelbot.services.alert_service.httpx.AsyncClient", mock_client_class):
            assert asyncio.run(send_alert("ERROR", "Test")) is False

    @patch("funnelbot.services.alert_service.settings", CONFIGURED)
    def test_returns_false_on_network_error(self):
        mock_client_class, mock_client = _client_returning(200)
        mock_client.post.side_effect = httpx.ConnectError("down")
        with patch("funnelbot.services.alert_service.httpx.AsyncClient", mock_client_class):
            assert asyncio.run(send_alert("ERROR", "Test")) is False


class TestAlertHelpers:
    @patch("funnelbot.services.alert_service.send_alert", new_callable=AsyncMock)
    def test_alert_error(self, mock_send):
        asyncio.run(alert_error("boom", {"step": 2}))
        mock_send.assert_awaited_once_with("ERROR", "boom", {"step": 2})
