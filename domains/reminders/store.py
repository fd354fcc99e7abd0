"""Supabase persistence for reminders and users.

Two contracts, each with a PostgREST implementation over httpx:
- ReminderStore: the ``reminders`` table
- UserDirectory: the ``users`` table (delivery channel, timezone)

Every transport or HTTP failure raises StoreError. Callers decide whether it
is fatal; the dispatch worker treats it as a retryable attempt failure.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol

import httpx

from config import SUPABASE_KEY, SUPABASE_URL
from logger import logger
from .types import DeliveryTarget, RecurrenceRule, Reminder, ReminderStatus


class StoreError(Exception):
    """The backing store could not be read or written."""


class ReminderStore(Protocol):
    async def create(
        self,
        user_id: str,
        task: str,
        scheduled_at: datetime,
        recurrence: RecurrenceRule = RecurrenceRule.NONE,
    ) -> Reminder: ...

    async def get(self, reminder_id: str) -> Optional[Reminder]: ...

    async def update_status(
        self,
        reminder_id: str,
        status: ReminderStatus,
        failure_reason: Optional[str] = None,
    ) -> None: ...

    async def cancel(self, reminder_id: str) -> None: ...

    async def complete_if_pending(self, reminder_id: str) -> bool: ...

    async def list_pending(self, user_id: Optional[str] = None, limit: Optional[int] = None) -> list[Reminder]: ...

    async def find_pending(self, user_id: str, query: Optional[str] = None) -> Optional[Reminder]: ...

    async def reschedule(self, reminder_id: str, scheduled_at: datetime) -> Optional[Reminder]: ...


class UserDirectory(Protocol):
    async def get_delivery_target(self, user_id: str) -> DeliveryTarget: ...

    async def get_timezone(self, user_id: str) -> Optional[str]: ...

    async def set_timezone(self, user_id: str, timezone_name: str) -> None: ...

    async def erase_user(self, user_id: str) -> None: ...


def infer_channel(address: str) -> str:
    """Phone numbers (``+`` prefix) go over WhatsApp, anything else is a Telegram chat id."""
    return "whatsapp" if address.startswith("+") else "telegram"


class _PostgrestClient:
    """Thin PostgREST caller shared by the store and the directory."""

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        timeout: float = 10,
    ):
        self.url = (url or SUPABASE_URL or "").rstrip("/")
        self.key = key or SUPABASE_KEY
        self.timeout = timeout

    def _headers(self) -> dict:
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def request(
        self,
        method: str,
        table: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> list[dict]:
        if not self.url or not self.key:
            raise StoreError("Supabase not configured")

        try:
            async with httpx.AsyncClient() as client:
                response = await client.request(
                    method,
                    f"{self.url}/rest/v1/{table}",
                    headers=self._headers(),
                    params=params,
                    json=json,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                if not response.content:
                    return []
                return response.json()
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {table} failed: {e}") from e


class SupabaseReminderStore(_PostgrestClient):
    """ReminderStore backed by the Supabase ``reminders`` table."""

    async def create(
        self,
        user_id: str,
        task: str,
        scheduled_at: datetime,
        recurrence: RecurrenceRule = RecurrenceRule.NONE,
    ) -> Reminder:
        rows = await self.request(
            "POST",
            "reminders",
            json={
                "user_id": user_id,
                "task": task,
                "scheduled_at": scheduled_at.isoformat(),
                "recurrence": RecurrenceRule.parse(recurrence).value,
                "status": ReminderStatus.PENDING.value,
            },
        )
        if not rows:
            raise StoreError("Insert returned no reminder row")
        reminder = Reminder.from_row(rows[0])
        logger.info(f"Saved reminder {reminder.id} for user {user_id}")
        return reminder

    async def get(self, reminder_id: str) -> Optional[Reminder]:
        rows = await self.request(
            "GET",
            "reminders",
            params={"id": f"eq.{reminder_id}", "select": "*"},
        )
        return Reminder.from_row(rows[0]) if rows else None

    async def update_status(
        self,
        reminder_id: str,
        status: ReminderStatus,
        failure_reason: Optional[str] = None,
    ) -> None:
        data = {"status": status.value}
        if status == ReminderStatus.DONE:
            data["done_at"] = _utcnow().isoformat()
        if failure_reason is not None:
            data["failure_reason"] = failure_reason

        await self.request("PATCH", "reminders", params={"id": f"eq.{reminder_id}"}, json=data)
        logger.debug(f"Reminder {reminder_id} -> {status.value}")

    async def cancel(self, reminder_id: str) -> None:
        await self.update_status(reminder_id, ReminderStatus.CANCELLED)

    async def complete_if_pending(self, reminder_id: str) -> bool:
        """Conditional pending -> done; False when another writer got there first."""
        rows = await self.request(
            "PATCH",
            "reminders",
            params={"id": f"eq.{reminder_id}", "status": "eq.pending"},
            json={"status": ReminderStatus.DONE.value, "done_at": _utcnow().isoformat()},
        )
        return bool(rows)

    async def list_pending(self, user_id: Optional[str] = None, limit: Optional[int] = None) -> list[Reminder]:
        params = {"status": "eq.pending", "select": "*", "order": "scheduled_at.asc"}
        if user_id is not None:
            params["user_id"] = f"eq.{user_id}"
        if limit is not None:
            params["limit"] = str(limit)

        rows = await self.request("GET", "reminders", params=params)
        return [Reminder.from_row(r) for r in rows]

    async def find_pending(self, user_id: str, query: Optional[str] = None) -> Optional[Reminder]:
        """Newest pending reminder of the user, optionally whose task contains ``query``."""
        params = {
            "user_id": f"eq.{user_id}",
            "status": "eq.pending",
            "select": "*",
            "order": "created_at.desc",
            "limit": "1",
        }
        if query:
            params["task"] = f"ilike.*{_escape_like(query)}*"

        rows = await self.request("GET", "reminders", params=params)
        return Reminder.from_row(rows[0]) if rows else None

    async def reschedule(self, reminder_id: str, scheduled_at: datetime) -> Optional[Reminder]:
        """Put any reminder back to pending at ``scheduled_at``."""
        rows = await self.request(
            "PATCH",
            "reminders",
            params={"id": f"eq.{reminder_id}"},
            json={
                "status": ReminderStatus.PENDING.value,
                "scheduled_at": scheduled_at.isoformat(),
                "failure_reason": None,
                "done_at": None,
            },
        )
        return Reminder.from_row(rows[0]) if rows else None


class SupabaseUserDirectory(_PostgrestClient):
    """UserDirectory backed by the Supabase ``users`` table."""

    async def _get_user(self, user_id: str) -> Optional[dict]:
        rows = await self.request(
            "GET",
            "users",
            params={"id": f"eq.{user_id}", "select": "id,phone_id,channel,timezone"},
        )
        return rows[0] if rows else None

    async def get_delivery_target(self, user_id: str) -> DeliveryTarget:
        user = await self._get_user(user_id)
        if not user or not user.get("phone_id"):
            raise StoreError(f"No delivery address for user {user_id}")

        address = str(user["phone_id"])
        channel = user.get("channel")
        if not channel or channel == "unknown":
            channel = infer_channel(address)
        return DeliveryTarget(channel=channel, address=address)

    async def get_timezone(self, user_id: str) -> Optional[str]:
        user = await self._get_user(user_id)
        return user.get("timezone") if user else None

    async def set_timezone(self, user_id: str, timezone_name: str) -> None:
        await self.request("PATCH", "users", params={"id": f"eq.{user_id}"}, json={"timezone": timezone_name})
        logger.info(f"Timezone for user {user_id} set to {timezone_name}")

    async def erase_user(self, user_id: str) -> None:
        await self.request("DELETE", "reminders", params={"user_id": f"eq.{user_id}"})
        await self.request("DELETE", "users", params={"id": f"eq.{user_id}"})
        logger.info(f"Erased data for user {user_id}")


def _escape_like(query: str) -> str:
    # PostgREST reserves these inside filter values
    return "".join(c for c in query if c not in ",()*%")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
