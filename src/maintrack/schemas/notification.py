"""Pydantic schemas for push subscriptions and manual sends."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class SubscriptionCreate(BaseModel):
    """The PushSubscription JSON a browser hands out, plus a device label."""
    endpoint: str = Field(..., min_length=1)
    keys: SubscriptionKeys
    device_name: Optional[str] = Field(None, max_length=255)


class Unsubscribe(BaseModel):
    endpoint: str = Field(..., min_length=1)


class SubscriptionRead(BaseModel):
    id: uuid.UUID
    device_name: Optional[str]
    ip_address: str
    last_used: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class SubscribeResponse(BaseModel):
    message: str
    subscription_id: uuid.UUID
    ip_address: str


class NotificationSend(BaseModel):
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    icon: Optional[str] = None
    url: Optional[str] = None
    tag: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class DeliveryReport(BaseModel):
    message: str
    success: int
    failed: int


class CleanupReport(BaseModel):
    removed: int
