"""Subscription registry: push subscriptions per user and device.

The endpoint URL is the dedup key: subscribing an endpoint that already
exists rewrites that row (new owner, keys, metadata) and reactivates it.
Deactivation never deletes; physical removal happens only in purge_stale,
a maintenance pass the lifecycle engine never calls.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.config import settings
from maintrack.db.models import PushSubscription, User


class SubscriptionRegistry:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Subscribe / unsubscribe ─────────────────────────

    async def upsert(
        self,
        user_id: uuid.UUID,
        endpoint: str,
        keys: dict[str, str],
        ip: str,
        user_agent: Optional[str] = None,
        device_name: Optional[str] = None,
    ) -> PushSubscription:
        """Create or refresh the subscription for an endpoint."""
        now = datetime.now(timezone.utc)
        sub = await self.db.scalar(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )

        if sub:
            sub.user_id = user_id
            sub.p256dh = keys["p256dh"]
            sub.auth = keys["auth"]
            sub.ip_address = ip
            if user_agent:
                sub.user_agent = user_agent
            if device_name:
                sub.device_name = device_name
            sub.is_active = True
            sub.last_used = now
        else:
            sub = PushSubscription(
                user_id=user_id,
                endpoint=endpoint,
                p256dh=keys["p256dh"],
                auth=keys["auth"],
                ip_address=ip,
                user_agent=user_agent,
                device_name=device_name,
                is_active=True,
                last_used=now,
            )
            self.db.add(sub)

        await self.db.commit()
        await self.db.refresh(sub)
        return sub

    async def deactivate(self, user_id: uuid.UUID, endpoint: str) -> None:
        await self.db.execute(
            update(PushSubscription)
            .where(
                PushSubscription.user_id == user_id,
                PushSubscription.endpoint == endpoint,
            )
            .values(is_active=False)
        )
        await self.db.commit()

    async def deactivate_all(self, user_id: uuid.UUID) -> None:
        await self.db.execute(
            update(PushSubscription)
            .where(PushSubscription.user_id == user_id)
            .values(is_active=False)
        )
        await self.db.commit()

    # ─── Read paths ──────────────────────────────────────

    async def active_by_user(self, user_id: uuid.UUID) -> list[PushSubscription]:
        result = await self.db.execute(
            select(PushSubscription)
            .where(
                PushSubscription.user_id == user_id,
                PushSubscription.is_active.is_(True),
            )
            .order_by(PushSubscription.last_used.desc())
        )
        return list(result.scalars().all())

    async def active_by_ip(self, ip: str) -> list[PushSubscription]:
        result = await self.db.execute(
            select(PushSubscription)
            .where(
                PushSubscription.ip_address == ip,
                PushSubscription.is_active.is_(True),
            )
            .order_by(PushSubscription.last_used.desc())
        )
        return list(result.scalars().all())

    async def active_by_user_ids(
        self, user_ids: Iterable[uuid.UUID]
    ) -> list[PushSubscription]:
        ids = list(user_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(PushSubscription)
            .where(
                PushSubscription.user_id.in_(ids),
                PushSubscription.is_active.is_(True),
            )
            .order_by(PushSubscription.last_used.desc())
        )
        return list(result.scalars().all())

    async def active_all(self) -> list[PushSubscription]:
        result = await self.db.execute(
            select(PushSubscription).where(PushSubscription.is_active.is_(True))
        )
        return list(result.scalars().all())

    async def user_ids_with_role(self, role: str) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(User.id).where(User.role == role, User.is_active.is_(True))
        )
        return list(result.scalars().all())

    # ─── Delivery bookkeeping ────────────────────────────

    async def mark_used(self, subscription_id: uuid.UUID) -> None:
        await self.db.execute(
            update(PushSubscription)
            .where(PushSubscription.id == subscription_id)
            .values(last_used=datetime.now(timezone.utc))
        )

    async def mark_gone(self, subscription_id: uuid.UUID) -> None:
        await self.db.execute(
            update(PushSubscription)
            .where(PushSubscription.id == subscription_id)
            .values(is_active=False)
        )

    # ─── Maintenance ─────────────────────────────────────

    async def purge_stale(self, now: Optional[datetime] = None) -> int:
        """Delete inactive rows and rows unused past the staleness cutoff.

        Returns the number of rows removed.
        """
        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        cutoff = now - timedelta(days=settings.subscription_stale_days)
        result = await self.db.execute(
            delete(PushSubscription).where(
                or_(
                    PushSubscription.is_active.is_(False),
                    PushSubscription.last_used < cutoff,
                )
            )
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()
        return result.rowcount or 0
