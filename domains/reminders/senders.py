"""Outbound notification senders (Telegram, WhatsApp via Twilio, Instagram)."""

from typing import Optional, Protocol

import httpx

from config import (
    INSTAGRAM_PAGE_ACCESS_TOKEN,
    TELEGRAM_BOT_TOKEN,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_WHATSAPP_NUMBER,
)
from logger import logger

TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"
TWILIO_API = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
INSTAGRAM_API = "https://graph.facebook.com/v19.0/me/messages"


class SendError(Exception):
    """A notification could not be delivered."""


class NotificationSender(Protocol):
    async def send(self, recipient: str, channel: str, text: str) -> None: ...


class ChannelSender(Protocol):
    async def send(self, address: str, text: str) -> None: ...


def format_reminder_message(task: str) -> str:
    """Text delivered when a reminder fires."""
    return (
        f"🔔 *REMINDER*: {task}\n\n"
        f"Reply with \"DONE\" to mark as finished or \"LIST\" to see other tasks."
    )


async def _post(url: str, **kwargs) -> httpx.Response:
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(url, timeout=15, **kwargs)
            response.raise_for_status()
            return response
    except httpx.HTTPStatusError as e:
        raise SendError(f"HTTP {e.response.status_code}: {e.response.text[:200]}") from e
    except httpx.HTTPError as e:
        raise SendError(f"{type(e).__name__}: {e}") from e


class TelegramSender:
    def __init__(self, token: str):
        self.token = token

    async def send(self, address: str, text: str) -> None:
        await _post(
            TELEGRAM_API.format(token=self.token),
            json={"chat_id": address, "text": text, "parse_mode": "Markdown"},
        )


class WhatsAppSender:
    """WhatsApp through the Twilio Messages REST resource."""

    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    async def send(self, address: str, text: str) -> None:
        await _post(
            TWILIO_API.format(sid=self.account_sid),
            auth=(self.account_sid, self.auth_token),
            data={
                "From": _whatsapp(self.from_number),
                "To": _whatsapp(address),
                "Body": text,
            },
        )


class InstagramSender:
    def __init__(self, page_access_token: str):
        self.page_access_token = page_access_token

    async def send(self, address: str, text: str) -> None:
        await _post(
            INSTAGRAM_API,
            params={"access_token": self.page_access_token},
            json={"recipient": {"id": address}, "message": {"text": text}},
        )


def _whatsapp(number: str) -> str:
    return number if number.startswith("whatsapp:") else f"whatsapp:{number}"


class ChannelRouter:
    """NotificationSender that picks the channel sender by name."""

    def __init__(self, senders: Optional[dict[str, ChannelSender]] = None):
        self.senders = dict(senders or {})

    def register(self, channel: str, sender: ChannelSender) -> None:
        self.senders[channel] = sender

    async def send(self, recipient: str, channel: str, text: str) -> None:
        sender = self.senders.get(channel)
        if sender is None:
            raise SendError(f"No sender configured for channel '{channel}'")
        await sender.send(recipient, text)
        logger.debug(f"Sent {channel} message to {recipient}")


def build_default_router() -> ChannelRouter:
    """Router with every channel that has credentials configured."""
    router = ChannelRouter()

    if TELEGRAM_BOT_TOKEN:
        router.register("telegram", TelegramSender(TELEGRAM_BOT_TOKEN))
    if TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_NUMBER:
        router.register("whatsapp", WhatsAppSender(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_WHATSAPP_NUMBER))
    if INSTAGRAM_PAGE_ACCESS_TOKEN:
        router.register("instagram", InstagramSender(INSTAGRAM_PAGE_ACCESS_TOKEN))

    if not router.senders:
        logger.warning("No notification channels configured, every delivery will fail")
    else:
        logger.info(f"Notification channels: {', '.join(sorted(router.senders))}")
    return router
