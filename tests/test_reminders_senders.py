"""Tests for notification senders and the channel router."""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from domains.reminders.senders import (
    ChannelRouter,
    InstagramSender,
    SendError,
    TelegramSender,
    WhatsAppSender,
    build_default_router,
    format_reminder_message,
)


def _ok():
    response = Mock()
    response.raise_for_status = Mock()
    return response


def test_reminder_message_text():
    assert format_reminder_message("call mom") == (
        "🔔 *REMINDER*: call mom\n\n"
        "Reply with \"DONE\" to mark as finished or \"LIST\" to see other tasks."
    )


class TestChannelSenders:

    @pytest.mark.asyncio
    async def test_telegram(self, mock_httpx_client):
        mock_httpx_client.post.return_value = _ok()

        await TelegramSender("bot-token").send("12345", "hello")

        args, kwargs = mock_httpx_client.post.call_args
        assert args[0] == "https://api.telegram.org/botbot-token/sendMessage"
        assert kwargs["json"] == {"chat_id": "12345", "text": "hello", "parse_mode": "Markdown"}

    @pytest.mark.asyncio
    async def test_whatsapp_via_twilio(self, mock_httpx_client):
        mock_httpx_client.post.return_value = _ok()

        await WhatsAppSender("AC123", "secret", "+14155238886").send("+919800000000", "hello")

        args, kwargs = mock_httpx_client.post.call_args
        assert args[0] == "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
        assert kwargs["auth"] == ("AC123", "secret")
        assert kwargs["data"] == {
            "From": "whatsapp:+14155238886",
            "To": "whatsapp:+919800000000",
            "Body": "hello",
        }

    @pytest.mark.asyncio
    async def test_instagram(self, mock_httpx_client):
        mock_httpx_client.post.return_value = _ok()

        await InstagramSender("page-token").send("ig-77", "hello")

        kwargs = mock_httpx_client.post.call_args.kwargs
        assert kwargs["params"] == {"access_token": "page-token"}
        assert kwargs["json"] == {"recipient": {"id": "ig-77"}, "message": {"text": "hello"}}

    @pytest.mark.asyncio
    async def test_status_error_becomes_send_error(self, mock_httpx_client):
        response = _ok()
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "403", request=Mock(), response=Mock(status_code=403, text="bot was blocked by the user")
        )
        mock_httpx_client.post.return_value = response

        with pytest.raises(SendError) as exc_info:
            await TelegramSender("bot-token").send("12345", "hello")

        assert "403" in str(exc_info.value)
        assert "blocked" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_becomes_send_error(self, mock_httpx_client):
        mock_httpx_client.post.side_effect = httpx.ReadTimeout("read timed out")

        with pytest.raises(SendError):
            await TelegramSender("bot-token").send("12345", "hello")


class TestChannelRouter:

    @pytest.mark.asyncio
    async def test_routes_by_channel(self):
        telegram = Mock(send=AsyncMock())
        whatsapp = Mock(send=AsyncMock())
        router = ChannelRouter({"telegram": telegram, "whatsapp": whatsapp})

        await router.send("+919800000000", "whatsapp", "hi")

        whatsapp.send.assert_awaited_once_with("+919800000000", "hi")
        telegram.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_unconfigured_channel_raises(self):
        with pytest.raises(SendError):
            await ChannelRouter().send("12345", "telegram", "hi")

    def test_default_router_registers_configured_channels(self):
        with patch("domains.reminders.senders.TELEGRAM_BOT_TOKEN", "tok"), \
             patch("domains.reminders.senders.TWILIO_ACCOUNT_SID", None), \
             patch("domains.reminders.senders.INSTAGRAM_PAGE_ACCESS_TOKEN", "page"):
            router = build_default_router()

        assert set(router.senders) == {"telegram", "instagram"}
