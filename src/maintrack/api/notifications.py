"""Push notification API routes.

Learn: Subscriptions are managed in the request's own session. Sends
from the admin endpoints go through the notifier's awaited run(), so
the caller gets the {success, failed} tally back; lifecycle pushes use
the detached path instead and never report.
"""

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.auth.dependencies import CurrentIdentity, get_current_user, require_roles
from maintrack.config import settings
from maintrack.db.engine import get_db
from maintrack.db.models import Role
from maintrack.middleware.client_ip import client_ip
from maintrack.notifications import messages
from maintrack.notifications.messages import Notification
from maintrack.notifications.notifier import PushNotifier, get_notifier
from maintrack.notifications.registry import SubscriptionRegistry
from maintrack.schemas.notification import (
    CleanupReport,
    DeliveryReport,
    NotificationSend,
    SubscribeResponse,
    SubscriptionCreate,
    SubscriptionRead,
    Unsubscribe,
)

router = APIRouter(prefix="/notifications")

# Mounted without the auth dependency: browsers fetch the key before login
public_router = APIRouter(prefix="/notifications")


def _registry(db: AsyncSession = Depends(get_db)) -> SubscriptionRegistry:
    return SubscriptionRegistry(db)


def _to_notification(body: NotificationSend) -> Notification:
    return Notification(
        title=body.title,
        body=body.body,
        icon=body.icon,
        url=body.url,
        tag=body.tag,
        data=body.data,
    )


@public_router.get("/vapid-public-key")
async def vapid_public_key():
    return {"public_key": settings.vapid_public_key}


# ═══════════════════════════════════════════════════════════
# Subscriptions
# ═══════════════════════════════════════════════════════════


@router.post("/subscribe", response_model=SubscribeResponse, status_code=201)
async def subscribe(
    body: SubscriptionCreate,
    request: Request,
    identity: CurrentIdentity = Depends(get_current_user),
    registry: SubscriptionRegistry = Depends(_registry),
):
    """Register (or refresh) this device's push subscription."""
    ip = client_ip(request)
    sub = await registry.upsert(
        identity.user_id,
        body.endpoint,
        body.keys.model_dump(),
        ip,
        user_agent=(request.headers.get("User-Agent") or "")[:500] or None,
        device_name=body.device_name,
    )
    return SubscribeResponse(
        message="Subscribed to push notifications",
        subscription_id=sub.id,
        ip_address=ip,
    )


@router.delete("/unsubscribe")
async def unsubscribe(
    body: Unsubscribe,
    identity: CurrentIdentity = Depends(get_current_user),
    registry: SubscriptionRegistry = Depends(_registry),
):
    await registry.deactivate(identity.user_id, body.endpoint)
    return {"message": "Unsubscribed from push notifications"}


@router.delete("/unsubscribe-all")
async def unsubscribe_all(
    identity: CurrentIdentity = Depends(get_current_user),
    registry: SubscriptionRegistry = Depends(_registry),
):
    await registry.deactivate_all(identity.user_id)
    return {"message": "Unsubscribed all devices"}


@router.get("/subscriptions", response_model=list[SubscriptionRead])
async def my_subscriptions(
    identity: CurrentIdentity = Depends(get_current_user),
    registry: SubscriptionRegistry = Depends(_registry),
):
    """Active subscriptions of the caller, most recently used first."""
    return await registry.active_by_user(identity.user_id)


# ═══════════════════════════════════════════════════════════
# Sending
# ═══════════════════════════════════════════════════════════


@router.post(
    "/send/user/{user_id}",
    response_model=DeliveryReport,
    dependencies=[Depends(require_roles(Role.ADMIN))],
)
async def send_to_user(
    user_id: uuid.UUID,
    body: NotificationSend,
    notifier: PushNotifier = Depends(get_notifier),
):
    notification = _to_notification(body)
    result = await notifier.run(lambda d: d.send_to_user(user_id, notification))
    return DeliveryReport(message="Notification sent", **result.as_dict())


@router.post(
    "/send/broadcast",
    response_model=DeliveryReport,
    dependencies=[Depends(require_roles(Role.ADMIN))],
)
async def send_broadcast(
    body: NotificationSend,
    notifier: PushNotifier = Depends(get_notifier),
):
    notification = _to_notification(body)
    result = await notifier.run(lambda d: d.send_to_all(notification))
    return DeliveryReport(message="Broadcast sent", **result.as_dict())


@router.post("/test", response_model=DeliveryReport)
async def send_test(
    identity: CurrentIdentity = Depends(get_current_user),
    notifier: PushNotifier = Depends(get_notifier),
):
    """Send a test notification to the caller's own devices."""
    notification = messages.self_test_notification()
    result = await notifier.run(lambda d: d.send_to_user(identity.user_id, notification))
    return DeliveryReport(message="Test notification sent", **result.as_dict())


@router.post(
    "/cleanup",
    response_model=CleanupReport,
    dependencies=[Depends(require_roles(Role.ADMIN))],
)
async def cleanup(registry: SubscriptionRegistry = Depends(_registry)):
    """Delete inactive subscriptions and those unused for the stale period."""
    return CleanupReport(removed=await registry.purge_stale())
