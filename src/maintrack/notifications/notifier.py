"""Push notifier: detached, best-effort push delivery.

Lifecycle operations must return as soon as their mutation is committed,
so pushes run as background asyncio tasks with their own database
session. Every failure is logged and swallowed here; nothing propagates
back to the operation that scheduled the push.

In-flight tasks are tracked so shutdown (and tests) can drain() them.
"""

import asyncio
import uuid
from typing import Awaitable, Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from maintrack.notifications.dispatcher import DeliveryResult, PushDispatcher
from maintrack.notifications.messages import Notification
from maintrack.notifications.provider import PushProvider

logger = structlog.get_logger()


class PushNotifier:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider: PushProvider,
    ):
        self.session_factory = session_factory
        self.provider = provider
        self._tasks: set[asyncio.Task] = set()

    # ─── Fire-and-forget entry points ────────────────────

    def notify_user(self, user_id: uuid.UUID, notification: Notification) -> asyncio.Task:
        return self._schedule(
            "user", lambda d: d.send_to_user(user_id, notification), notification
        )

    def notify_role(self, role: str, notification: Notification) -> asyncio.Task:
        return self._schedule(
            "role", lambda d: d.send_to_role(role, notification), notification
        )

    # ─── Awaited entry point (admin send endpoints) ──────

    async def run(
        self, send: Callable[[PushDispatcher], Awaitable[DeliveryResult]]
    ) -> DeliveryResult:
        async with self.session_factory() as db:
            return await send(PushDispatcher(db, self.provider))

    async def drain(self) -> None:
        """Wait for every scheduled push to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # ─── Internals ───────────────────────────────────────

    def _schedule(
        self,
        target: str,
        send: Callable[[PushDispatcher], Awaitable[DeliveryResult]],
        notification: Notification,
    ) -> asyncio.Task:
        task = asyncio.create_task(self._guarded(target, send, notification))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(
        self,
        target: str,
        send: Callable[[PushDispatcher], Awaitable[DeliveryResult]],
        notification: Notification,
    ) -> Optional[DeliveryResult]:
        try:
            return await self.run(send)
        except Exception:
            logger.exception("push.notify_failed", target=target, tag=notification.tag)
            return None


_notifier: Optional[PushNotifier] = None


def init_notifier(
    session_factory: async_sessionmaker[AsyncSession],
    provider: PushProvider,
) -> PushNotifier:
    """Create the process-wide notifier (called from the app lifespan)."""
    global _notifier
    _notifier = PushNotifier(session_factory, provider)
    return _notifier


def get_notifier() -> PushNotifier:
    """FastAPI dependency returning the process-wide notifier."""
    if _notifier is None:
        raise RuntimeError("Notifier not initialized. Call init_notifier() first.")
    return _notifier
