"""Push subscription registry, dispatcher and notifier tests."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from maintrack.db.models import PushSubscription
from maintrack.notifications import messages
from maintrack.notifications.dispatcher import PushDispatcher, build_payload
from maintrack.notifications.messages import Notification
from maintrack.notifications.notifier import PushNotifier
from maintrack.notifications.provider import PushDeliveryError, WebPushProvider
from maintrack.notifications.registry import SubscriptionRegistry

KEYS = {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"}


async def _count(db) -> int:
    return await db.scalar(select(func.count()).select_from(PushSubscription))


# ═══════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_upsert_creates_active_subscription(db_session, users):
    registry = SubscriptionRegistry(db_session)
    sub = await registry.upsert(
        users.user.id, "https://push.test/a", KEYS, "10.0.0.1",
        user_agent="Firefox", device_name="Workshop tablet",
    )
    assert sub.is_active is True
    assert sub.last_used is not None
    assert sub.device_name == "Workshop tablet"
    assert await _count(db_session) == 1


@pytest.mark.asyncio
async def test_upsert_same_endpoint_updates_in_place(db_session, users):
    """The endpoint is the dedup key: owner, keys and IP are rewritten."""
    registry = SubscriptionRegistry(db_session)
    first = await registry.upsert(users.user.id, "https://push.test/a", KEYS, "10.0.0.1",
                                  device_name="Tablet")
    await registry.deactivate(users.user.id, "https://push.test/a")

    second = await registry.upsert(
        users.tech.id, "https://push.test/a", {"p256dh": "new-key", "auth": "new-auth"}, "10.0.0.9",
    )

    assert second.id == first.id
    assert await _count(db_session) == 1
    assert second.user_id == users.tech.id
    assert second.p256dh == "new-key"
    assert second.ip_address == "10.0.0.9"
    assert second.is_active is True
    # Not given this time, so kept
    assert second.device_name == "Tablet"


@pytest.mark.asyncio
async def test_deactivate_never_deletes(db_session, users):
    registry = SubscriptionRegistry(db_session)
    await registry.upsert(users.user.id, "https://push.test/a", KEYS, "10.0.0.1")
    await registry.upsert(users.user.id, "https://push.test/b", KEYS, "10.0.0.1")
    await registry.upsert(users.tech.id, "https://push.test/c", KEYS, "10.0.0.2")

    await registry.deactivate(users.user.id, "https://push.test/a")
    assert [s.endpoint for s in await registry.active_by_user(users.user.id)] == [
        "https://push.test/b"
    ]

    await registry.deactivate_all(users.user.id)
    assert await registry.active_by_user(users.user.id) == []
    assert len(await registry.active_by_user(users.tech.id)) == 1
    assert await _count(db_session) == 3


@pytest.mark.asyncio
async def test_deactivate_only_touches_own_endpoint(db_session, users):
    registry = SubscriptionRegistry(db_session)
    await registry.upsert(users.user.id, "https://push.test/a", KEYS, "10.0.0.1")
    await registry.deactivate(users.tech.id, "https://push.test/a")
    assert len(await registry.active_by_user(users.user.id)) == 1


@pytest.mark.asyncio
async def test_active_by_user_ordered_by_last_used(db_session, users):
    registry = SubscriptionRegistry(db_session)
    old = await registry.upsert(users.user.id, "https://push.test/old", KEYS, "10.0.0.1")
    new = await registry.upsert(users.user.id, "https://push.test/new", KEYS, "10.0.0.1")
    old.last_used = datetime.now(timezone.utc) - timedelta(days=2)
    await db_session.commit()

    assert [s.id for s in await registry.active_by_user(users.user.id)] == [new.id, old.id]


@pytest.mark.asyncio
async def test_active_by_ip_and_role(db_session, users):
    registry = SubscriptionRegistry(db_session)
    await registry.upsert(users.admin.id, "https://push.test/admin", KEYS, "192.168.1.10")
    await registry.upsert(users.user.id, "https://push.test/user", KEYS, "192.168.1.10")
    await registry.upsert(users.tech.id, "https://push.test/tech", KEYS, "192.168.1.20")

    assert len(await registry.active_by_ip("192.168.1.10")) == 2
    assert await registry.user_ids_with_role("ADMIN") == [users.admin.id]
    assert {s.endpoint for s in await registry.active_all()} == {
        "https://push.test/admin", "https://push.test/user", "https://push.test/tech",
    }


@pytest.mark.asyncio
async def test_purge_stale_removes_inactive_and_unused(db_session, users):
    """Exactly the inactive rows and rows unused for 30 days are removed."""
    now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    rows = {
        "fresh": dict(is_active=True, last_used=now - timedelta(days=1)),
        "edge": dict(is_active=True, last_used=now - timedelta(days=29, hours=23)),
        "stale": dict(is_active=True, last_used=now - timedelta(days=31)),
        "inactive": dict(is_active=False, last_used=now - timedelta(days=1)),
        "never_used": dict(is_active=True, last_used=None),
    }
    for name, attrs in rows.items():
        db_session.add(PushSubscription(
            user_id=users.user.id, endpoint=f"https://push.test/{name}",
            p256dh="k", auth="a", ip_address="10.0.0.1", **attrs,
        ))
    await db_session.commit()

    removed = await SubscriptionRegistry(db_session).purge_stale(now=now)

    assert removed == 2
    left = await db_session.scalars(select(PushSubscription.endpoint))
    assert sorted(left) == [
        "https://push.test/edge", "https://push.test/fresh", "https://push.test/never_used",
    ]


# ═══════════════════════════════════════════════════════════
# Dispatcher
# ═══════════════════════════════════════════════════════════


def test_build_payload_defaults():
    payload = json.loads(build_payload(Notification(title="Hi", body="There")))
    assert payload["title"] == "Hi"
    assert payload["body"] == "There"
    assert payload["url"] == "/"
    assert payload["icon"] == "/assets/icons/icon-192x192.png"
    assert payload["badge"] == "/assets/icons/badge-72x72.png"
    assert payload["data"] == {}
    assert isinstance(payload["timestamp"], int)


@pytest.mark.asyncio
async def test_dispatch_deactivates_exactly_the_gone_endpoints(db_session, users, push_provider):
    """N subscriptions, K gone → K deactivated and {success: N-K, failed: K}."""
    registry = SubscriptionRegistry(db_session)
    endpoints = [f"https://push.test/{i}" for i in range(6)]
    for endpoint in endpoints:
        await registry.upsert(users.user.id, endpoint, KEYS, "10.0.0.1")
    push_provider.failures[endpoints[1]] = 410
    push_provider.failures[endpoints[4]] = 404

    result = await PushDispatcher(db_session, push_provider).send_to_user(
        users.user.id, Notification(title="t", body="b")
    )

    assert result.as_dict() == {"success": 4, "failed": 2}
    active = {s.endpoint for s in await registry.active_by_user(users.user.id)}
    assert active == set(endpoints) - {endpoints[1], endpoints[4]}


@pytest.mark.asyncio
async def test_dispatch_transient_failure_keeps_subscription(db_session, users, push_provider):
    registry = SubscriptionRegistry(db_session)
    await registry.upsert(users.user.id, "https://push.test/flaky", KEYS, "10.0.0.1")
    await registry.upsert(users.user.id, "https://push.test/ok", KEYS, "10.0.0.1")
    push_provider.failures["https://push.test/flaky"] = 500

    result = await PushDispatcher(db_session, push_provider).send_to_user(
        users.user.id, Notification(title="t", body="b")
    )

    assert (result.success, result.failed) == (1, 1)
    assert len(await registry.active_by_user(users.user.id)) == 2


@pytest.mark.asyncio
async def test_dispatch_isolates_unexpected_errors(db_session, users):
    class ExplodingProvider:
        async def send(self, endpoint, keys, payload):
            if endpoint.endswith("boom"):
                raise RuntimeError("socket reset")

    registry = SubscriptionRegistry(db_session)
    await registry.upsert(users.user.id, "https://push.test/boom", KEYS, "10.0.0.1")
    await registry.upsert(users.user.id, "https://push.test/fine", KEYS, "10.0.0.1")

    result = await PushDispatcher(db_session, ExplodingProvider()).send_to_user(
        users.user.id, Notification(title="t", body="b")
    )

    assert result.as_dict() == {"success": 1, "failed": 1}
    assert len(await registry.active_by_user(users.user.id)) == 2


@pytest.mark.asyncio
async def test_dispatch_success_refreshes_last_used(db_session, users, push_provider):
    registry = SubscriptionRegistry(db_session)
    sub = await registry.upsert(users.user.id, "https://push.test/a", KEYS, "10.0.0.1")
    sub.last_used = datetime(2026, 1, 1, tzinfo=timezone.utc)
    await db_session.commit()

    await PushDispatcher(db_session, push_provider).send_to_user(
        users.user.id, Notification(title="t", body="b")
    )

    await db_session.refresh(sub)
    assert sub.last_used.replace(tzinfo=None) > datetime(2026, 1, 2)


@pytest.mark.asyncio
async def test_dispatch_to_nobody(db_session, users, push_provider):
    result = await PushDispatcher(db_session, push_provider).send_to_role(
        "TECHNICIAN", Notification(title="t", body="b")
    )
    assert result.as_dict() == {"success": 0, "failed": 0}
    assert push_provider.sent == []


@pytest.mark.asyncio
async def test_dispatch_to_ip_and_all(db_session, users, push_provider):
    registry = SubscriptionRegistry(db_session)
    await registry.upsert(users.user.id, "https://push.test/a", KEYS, "10.0.0.1")
    await registry.upsert(users.tech.id, "https://push.test/b", KEYS, "10.0.0.2")
    dispatcher = PushDispatcher(db_session, push_provider)

    by_ip = await dispatcher.send_to_ip("10.0.0.2", Notification(title="t", body="b"))
    everyone = await dispatcher.send_to_all(Notification(title="t", body="b"))

    assert by_ip.success == 1
    assert everyone.success == 2
    assert push_provider.sent[0][0] == "https://push.test/b"


# ═══════════════════════════════════════════════════════════
# Notifier
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_notifier_swallows_failures(users):
    """A crashing delivery is logged, never raised to whoever scheduled it."""

    class BrokenProvider:
        async def send(self, endpoint, keys, payload):
            raise AssertionError("unreachable")

    class BrokenFactory:
        def __call__(self):
            raise ConnectionError("database down")

    notifier = PushNotifier(BrokenFactory(), BrokenProvider())
    task = notifier.notify_user(users.user.id, Notification(title="t", body="b"))
    await notifier.drain()

    assert task.result() is None
    assert notifier.pending == 0


@pytest.mark.asyncio
async def test_notifier_delivers_in_own_session(session_factory, db_session, users, push_provider):
    await SubscriptionRegistry(db_session).upsert(
        users.admin.id, "https://push.test/admin", KEYS, "10.0.0.1"
    )
    notifier = PushNotifier(session_factory, push_provider)

    notifier.notify_role("ADMIN", messages.self_test_notification())
    await notifier.drain()

    (payload,) = push_provider.payloads_for("https://push.test/admin")
    assert payload["title"] == "Test notification"


# ═══════════════════════════════════════════════════════════
# Provider
# ═══════════════════════════════════════════════════════════


def test_delivery_error_gone_classification():
    assert PushDeliveryError("gone", status_code=410).endpoint_gone
    assert PushDeliveryError("missing", status_code=404).endpoint_gone
    assert not PushDeliveryError("server error", status_code=500).endpoint_gone
    assert not PushDeliveryError("no response").endpoint_gone


@pytest.mark.asyncio
async def test_webpush_provider_maps_status_code(monkeypatch):
    from pywebpush import WebPushException

    class FakeResponse:
        status_code = 410
        text = "Gone"

    def fake_webpush(**kwargs):
        assert kwargs["vapid_claims"] == {"sub": "mailto:ops@plant.test"}
        raise WebPushException("Push failed", response=FakeResponse())

    monkeypatch.setattr("maintrack.notifications.provider.webpush", fake_webpush)
    provider = WebPushProvider(private_key="key", subject="mailto:ops@plant.test")

    with pytest.raises(PushDeliveryError) as exc_info:
        await provider.send("https://push.test/a", KEYS, "{}")
    assert exc_info.value.status_code == 410
    assert exc_info.value.endpoint_gone


# ═══════════════════════════════════════════════════════════
# Message texts
# ═══════════════════════════════════════════════════════════


def test_status_labels_follow_locale(monkeypatch):
    from maintrack.config import settings

    assert messages.status_label("COMPLETED") == "Completed"
    monkeypatch.setattr(settings, "notification_locale", "th")
    assert messages.status_label("COMPLETED") == "เสร็จสิ้น"
    assert messages.status_label("UNKNOWN") == "UNKNOWN"
