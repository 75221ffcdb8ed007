"""Push notification API tests: subscriptions, manual sends, cleanup."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from conftest import auth_headers
from maintrack.config import settings
from maintrack.db.models import PushSubscription

BASE = "/api/v1/notifications"


def _subscription(endpoint: str, device_name: str | None = None) -> dict:
    body = {"endpoint": endpoint, "keys": {"p256dh": "pk", "auth": "ak"}}
    if device_name:
        body["device_name"] = device_name
    return body


async def _subscribe(client, user, endpoint, headers=None):
    resp = await client.post(
        f"{BASE}/subscribe",
        json=_subscription(endpoint),
        headers={**auth_headers(user), **(headers or {})},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


# ═══════════════════════════════════════════════════════════
# Public key
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_vapid_key_needs_no_token(client, monkeypatch):
    monkeypatch.setattr(settings, "vapid_public_key", "BPublicKey")
    resp = await client.get(f"{BASE}/vapid-public-key")
    assert resp.status_code == 200
    assert resp.json() == {"public_key": "BPublicKey"}


# ═══════════════════════════════════════════════════════════
# Subscriptions
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_subscribe_records_forwarded_ip(client, users, db_session):
    resp = await client.post(
        f"{BASE}/subscribe",
        json=_subscription("https://push.test/a", device_name="Workshop tablet"),
        headers={
            **auth_headers(users.tech),
            "X-Forwarded-For": "203.0.113.7, 10.0.0.1",
            "User-Agent": "Mozilla/5.0 " + "x" * 600,
        },
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["ip_address"] == "203.0.113.7"
    sub = await db_session.scalar(
        select(PushSubscription).where(PushSubscription.endpoint == "https://push.test/a")
    )
    assert sub.user_id == users.tech.id
    assert sub.device_name == "Workshop tablet"
    assert len(sub.user_agent) == 500


@pytest.mark.asyncio
async def test_subscribe_falls_back_to_real_ip(client, users):
    body = await _subscribe(client, users.user, "https://push.test/b", {"X-Real-IP": "198.51.100.4"})
    assert body["ip_address"] == "198.51.100.4"


@pytest.mark.asyncio
async def test_resubscribe_same_endpoint_keeps_one_row(client, users, db_session):
    first = await _subscribe(client, users.user, "https://push.test/shared")
    second = await _subscribe(client, users.admin, "https://push.test/shared")

    assert first["subscription_id"] == second["subscription_id"]
    rows = (await db_session.execute(select(PushSubscription))).scalars().all()
    assert len(rows) == 1
    assert rows[0].user_id == users.admin.id


@pytest.mark.asyncio
async def test_subscribe_rejects_missing_keys(client, users):
    resp = await client.post(
        f"{BASE}/subscribe",
        json={"endpoint": "https://push.test/c"},
        headers=auth_headers(users.user),
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_and_unsubscribe(client, users):
    await _subscribe(client, users.user, "https://push.test/phone")
    await _subscribe(client, users.user, "https://push.test/laptop")
    headers = auth_headers(users.user)

    listed = await client.get(f"{BASE}/subscriptions", headers=headers)
    assert len(listed.json()) == 2

    resp = await client.request(
        "DELETE", f"{BASE}/unsubscribe", json={"endpoint": "https://push.test/phone"}, headers=headers
    )
    assert resp.status_code == 200
    assert len((await client.get(f"{BASE}/subscriptions", headers=headers)).json()) == 1

    await client.delete(f"{BASE}/unsubscribe-all", headers=headers)
    assert (await client.get(f"{BASE}/subscriptions", headers=headers)).json() == []


@pytest.mark.asyncio
async def test_unsubscribe_ignores_other_users_endpoint(client, users):
    await _subscribe(client, users.user, "https://push.test/phone")

    await client.request(
        "DELETE",
        f"{BASE}/unsubscribe",
        json={"endpoint": "https://push.test/phone"},
        headers=auth_headers(users.tech),
    )

    listed = await client.get(f"{BASE}/subscriptions", headers=auth_headers(users.user))
    assert len(listed.json()) == 1


@pytest.mark.asyncio
async def test_subscription_endpoints_require_auth(client):
    assert (await client.get(f"{BASE}/subscriptions")).status_code == 401
    assert (await client.post(f"{BASE}/subscribe", json=_subscription("x"))).status_code == 401


# ═══════════════════════════════════════════════════════════
# Sending
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_send_to_user_reports_tally(client, users, push_provider):
    await _subscribe(client, users.tech, "https://push.test/ok")
    await _subscribe(client, users.tech, "https://push.test/gone")
    push_provider.failures["https://push.test/gone"] = 410

    resp = await client.post(
        f"{BASE}/send/user/{users.tech.id}",
        json={"title": "Shift change", "body": "Report to Hall B"},
        headers=auth_headers(users.admin),
    )

    assert resp.status_code == 200
    assert resp.json() == {"message": "Notification sent", "success": 1, "failed": 1}
    listed = await client.get(f"{BASE}/subscriptions", headers=auth_headers(users.tech))
    assert len(listed.json()) == 1
    payload, = push_provider.payloads_for("https://push.test/ok")
    assert payload["title"] == "Shift change"
    assert payload["icon"] == settings.push_icon


@pytest.mark.asyncio
async def test_broadcast_reaches_every_device(client, users, push_provider):
    await _subscribe(client, users.user, "https://push.test/1")
    await _subscribe(client, users.tech, "https://push.test/2")
    await _subscribe(client, users.admin, "https://push.test/3")

    resp = await client.post(
        f"{BASE}/send/broadcast",
        json={"title": "Plant closed", "body": "Public holiday", "url": "/news"},
        headers=auth_headers(users.admin),
    )

    assert resp.json() == {"message": "Broadcast sent", "success": 3, "failed": 0}
    assert {e for e, _ in push_provider.sent} == {
        "https://push.test/1", "https://push.test/2", "https://push.test/3",
    }


@pytest.mark.asyncio
async def test_sending_is_admin_only(client, users):
    resp = await client.post(
        f"{BASE}/send/broadcast",
        json={"title": "Hi", "body": "there"},
        headers=auth_headers(users.tech),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_self_test_push_goes_to_caller_only(client, users, push_provider):
    await _subscribe(client, users.user, "https://push.test/mine")
    await _subscribe(client, users.tech, "https://push.test/theirs")

    resp = await client.post(f"{BASE}/test", headers=auth_headers(users.user))

    assert resp.json()["success"] == 1
    assert [e for e, _ in push_provider.sent] == ["https://push.test/mine"]
    assert push_provider.sent[0][1]["tag"] == "test-notification"


@pytest.mark.asyncio
async def test_send_with_no_devices(client, users):
    resp = await client.post(
        f"{BASE}/send/user/{users.user.id}",
        json={"title": "Hi", "body": "there"},
        headers=auth_headers(users.admin),
    )
    assert resp.json() == {"message": "Notification sent", "success": 0, "failed": 0}


# ═══════════════════════════════════════════════════════════
# Cleanup
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_cleanup_removes_inactive_and_stale(client, users, db_session):
    now = datetime.now(timezone.utc)
    db_session.add_all([
        PushSubscription(user_id=users.user.id, endpoint="https://push.test/fresh",
                         p256dh="k", auth="a", ip_address="10.0.0.1", last_used=now),
        PushSubscription(user_id=users.user.id, endpoint="https://push.test/old",
                         p256dh="k", auth="a", ip_address="10.0.0.1",
                         last_used=now - timedelta(days=45)),
        PushSubscription(user_id=users.user.id, endpoint="https://push.test/off",
                         p256dh="k", auth="a", ip_address="10.0.0.1",
                         last_used=now, is_active=False),
    ])
    await db_session.commit()

    resp = await client.post(f"{BASE}/cleanup", headers=auth_headers(users.admin))

    assert resp.status_code == 200
    assert resp.json() == {"removed": 2}
    db_session.expire_all()
    remaining = (await db_session.execute(select(PushSubscription.endpoint))).scalars().all()
    assert remaining == ["https://push.test/fresh"]


@pytest.mark.asyncio
async def test_cleanup_is_admin_only(client, users):
    resp = await client.post(f"{BASE}/cleanup", headers=auth_headers(users.user))
    assert resp.status_code == 403
