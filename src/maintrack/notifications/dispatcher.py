"""Push dispatcher: best-effort delivery to a batch of subscriptions.

Every subscription is attempted independently and concurrently; one
failure never aborts the batch. Outcome per subscription:

    delivered           → success += 1, last_used = now
    404 / 410 (gone)    → failed += 1, subscription deactivated
    anything else       → failed += 1, subscription left active (no retry)
"""

import asyncio
import json
import time
import uuid
from dataclasses import dataclass
from typing import Iterable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.config import settings
from maintrack.db.models import PushSubscription
from maintrack.notifications.messages import Notification
from maintrack.notifications.provider import PushDeliveryError, PushProvider
from maintrack.notifications.registry import SubscriptionRegistry

logger = structlog.get_logger()


@dataclass
class DeliveryResult:
    success: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"success": self.success, "failed": self.failed}


def build_payload(notification: Notification) -> str:
    """Serialize a notification into the JSON the service worker reads."""
    return json.dumps({
        "title": notification.title,
        "body": notification.body,
        "icon": notification.icon or settings.push_icon,
        "badge": settings.push_badge,
        "url": notification.url or "/",
        "tag": notification.tag,
        "data": notification.data,
        "timestamp": int(time.time() * 1000),
    })


class PushDispatcher:
    def __init__(self, db: AsyncSession, provider: PushProvider):
        self.db = db
        self.provider = provider
        self.registry = SubscriptionRegistry(db)

    async def send_to_subscriptions(
        self,
        subscriptions: Iterable[PushSubscription],
        notification: Notification,
    ) -> DeliveryResult:
        subs = list(subscriptions)
        result = DeliveryResult()
        if not subs:
            return result

        payload = build_payload(notification)
        outcomes = await asyncio.gather(
            *(self._deliver(sub, payload) for sub in subs)
        )

        # Bookkeeping runs after the sends: one session, no concurrent writes
        for sub, (delivered, gone) in zip(subs, outcomes):
            if delivered:
                result.success += 1
                await self.registry.mark_used(sub.id)
            else:
                result.failed += 1
                if gone:
                    await self.registry.mark_gone(sub.id)
        await self.db.commit()

        logger.info(
            "push.batch_sent",
            tag=notification.tag,
            success=result.success,
            failed=result.failed,
        )
        return result

    async def _deliver(self, sub: PushSubscription, payload: str) -> tuple[bool, bool]:
        """Attempt one delivery. Returns (delivered, endpoint_gone)."""
        try:
            await self.provider.send(
                sub.endpoint,
                {"p256dh": sub.p256dh, "auth": sub.auth},
                payload,
            )
            return True, False
        except PushDeliveryError as e:
            logger.error(
                "push.delivery_failed",
                endpoint=sub.endpoint,
                status_code=e.status_code,
                error=str(e),
            )
            return False, e.endpoint_gone
        except Exception as e:
            logger.error("push.delivery_failed", endpoint=sub.endpoint, error=str(e))
            return False, False

    # ─── Targeting wrappers ──────────────────────────────

    async def send_to_user(
        self, user_id: uuid.UUID, notification: Notification
    ) -> DeliveryResult:
        subs = await self.registry.active_by_user(user_id)
        return await self.send_to_subscriptions(subs, notification)

    async def send_to_ip(self, ip: str, notification: Notification) -> DeliveryResult:
        subs = await self.registry.active_by_ip(ip)
        return await self.send_to_subscriptions(subs, notification)

    async def send_to_users(
        self, user_ids: Iterable[uuid.UUID], notification: Notification
    ) -> DeliveryResult:
        subs = await self.registry.active_by_user_ids(user_ids)
        return await self.send_to_subscriptions(subs, notification)

    async def send_to_role(self, role: str, notification: Notification) -> DeliveryResult:
        user_ids = await self.registry.user_ids_with_role(role)
        return await self.send_to_users(user_ids, notification)

    async def send_to_all(self, notification: Notification) -> DeliveryResult:
        subs = await self.registry.active_all()
        return await self.send_to_subscriptions(subs, notification)
