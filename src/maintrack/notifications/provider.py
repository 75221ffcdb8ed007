"""Push provider: the send(endpoint, keys, payload) capability.

WebPushProvider signs requests with the VAPID key pair from settings and
hands the encrypted payload to the browser vendor's push service via
pywebpush. pywebpush is blocking (requests), so each send runs in a
worker thread.
"""

import asyncio
from typing import Optional, Protocol

from pywebpush import WebPushException, webpush

from maintrack.config import settings

# Status codes push services use for "this subscription no longer exists"
GONE_STATUS_CODES = frozenset({404, 410})


class PushDeliveryError(Exception):
    """A push service rejected or failed a delivery."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def endpoint_gone(self) -> bool:
        return self.status_code in GONE_STATUS_CODES


class PushProvider(Protocol):
    async def send(self, endpoint: str, keys: dict[str, str], payload: str) -> None:
        """Deliver payload or raise PushDeliveryError."""
        ...


class WebPushProvider:
    """VAPID-authenticated Web Push over pywebpush."""

    def __init__(
        self,
        private_key: str,
        subject: str,
        ttl: int = 86400,
    ):
        self.private_key = private_key
        self.subject = subject
        self.ttl = ttl

    async def send(self, endpoint: str, keys: dict[str, str], payload: str) -> None:
        await asyncio.to_thread(self._send_blocking, endpoint, keys, payload)

    def _send_blocking(self, endpoint: str, keys: dict[str, str], payload: str) -> None:
        try:
            webpush(
                subscription_info={"endpoint": endpoint, "keys": keys},
                data=payload,
                vapid_private_key=self.private_key,
                vapid_claims={"sub": self.subject},
                ttl=self.ttl,
            )
        except WebPushException as e:
            status_code = e.response.status_code if e.response is not None else None
            raise PushDeliveryError(str(e), status_code=status_code) from e


def build_default_provider() -> WebPushProvider:
    return WebPushProvider(
        private_key=settings.vapid_private_key,
        subject=settings.vapid_subject,
        ttl=settings.push_ttl_seconds,
    )
