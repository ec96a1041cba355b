"""Notification dispatcher collaborator.

The workflow only ever calls ``send(target, message)`` after a transition
has been committed. Targets are ``admins`` or ``user:<loginId>``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import httpx

if TYPE_CHECKING:
    from approval_engine.config import Settings

logger = logging.getLogger(__name__)

ADMINS_TARGET = "admins"


def user_target(login_id: str) -> str:
    return f"user:{login_id}"


@runtime_checkable
class Notifier(Protocol):
    """Interface for the external notification sink."""

    async def send(self, target: str, message: str) -> None:
        """Deliver ``message`` to ``target``. May raise; callers treat delivery as best-effort."""
        ...


class LoggingNotifier:
    """Default notifier that only writes messages to the log."""

    async def send(self, target: str, message: str) -> None:
        logger.info("notify %s: %s", target, message)


class InMemoryNotifier:
    """In-memory stub that records every message, for development and tests."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, target: str, message: str) -> None:
        self.sent.append((target, message))

    def messages_for(self, target: str) -> list[str]:
        return [message for t, message in self.sent if t == target]


class TelegramNotifier:
    """Send notifications through the Telegram Bot API.

    ``admins`` fans out to every configured admin chat; ``user:<loginId>``
    targets are delivered only when a chat id is known for that login.
    """

    def __init__(
        self,
        bot_token: str,
        admin_chat_ids: list[str],
        user_chat_ids: dict[str, str] | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        self._admin_chat_ids = list(admin_chat_ids)
        self._user_chat_ids = dict(user_chat_ids or {})
        self._timeout = timeout
        self._client = client

    def _chat_ids_for(self, target: str) -> list[str]:
        if target == ADMINS_TARGET:
            return self._admin_chat_ids
        if target.startswith("user:"):
            chat_id = self._user_chat_ids.get(target.removeprefix("user:"))
            return [chat_id] if chat_id else []
        return []

    async def send(self, target: str, message: str) -> None:
        chat_ids = self._chat_ids_for(target)
        if not chat_ids:
            logger.debug("No Telegram chat configured for %s", target)
            return
        if self._client is not None:
            await self._post_all(self._client, chat_ids, message)
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            await self._post_all(client, chat_ids, message)

    async def _post_all(self, client: httpx.AsyncClient, chat_ids: list[str], message: str) -> None:
        for chat_id in chat_ids:
            response = await client.post(
                self._url,
                json={"chat_id": chat_id, "text": message, "disable_web_page_preview": True},
            )
            response.raise_for_status()


def build_notifier(settings: Settings) -> Notifier:
    """Pick the notifier for the configured environment."""
    if settings.telegram_bot_token and (settings.telegram_admin_chat_ids or settings.telegram_user_chat_ids):
        return TelegramNotifier(
            settings.telegram_bot_token,
            settings.telegram_admin_chat_ids,
            user_chat_ids=settings.telegram_user_chat_ids,
            timeout=settings.notify_timeout_seconds,
        )
    return LoggingNotifier()


_notifier: Notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    """FastAPI dependency for the notifier."""
    return _notifier


def set_notifier(notifier: Notifier) -> None:
    """Override the notifier (for testing or production wiring)."""
    global _notifier
    _notifier = notifier
