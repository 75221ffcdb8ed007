"""Push notification texts.

A Notification is what a caller wants shown on the device; the
dispatcher turns it into the JSON payload the service worker reads.
Texts exist in English and Thai, picked by settings.notification_locale.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from maintrack.config import settings
from maintrack.db.models import MaintenanceRequest, Status


@dataclass
class Notification:
    title: str
    body: str
    icon: Optional[str] = None
    url: Optional[str] = None
    tag: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


_TEXTS = {
    "en": {
        "created_title": "New maintenance request",
        "assigned_title": "New assignment",
        "assigned_body": "You have been assigned to: {machine}",
        "status_title": "Maintenance request status updated",
        "test_title": "Test notification",
        "test_body": "Push notifications are working!",
        "machine_fallback": "Machine",
        "no_description": "No description",
        "status": {
            Status.OPEN.value: "Reopened",
            Status.IN_PROGRESS.value: "In progress",
            Status.COMPLETED.value: "Completed",
            Status.CANCELED.value: "Canceled",
        },
    },
    "th": {
        "created_title": "คำขอซ่อมใหม่",
        "assigned_title": "งานใหม่ที่ได้รับมอบหมาย",
        "assigned_body": "คุณได้รับมอบหมายให้ดูแล: {machine}",
        "status_title": "อัพเดตสถานะคำขอซ่อม",
        "test_title": "ทดสอบการแจ้งเตือน",
        "test_body": "ระบบแจ้งเตือน Push Notification ทำงานปกติ!",
        "machine_fallback": "เครื่องจักร",
        "no_description": "ไม่มีรายละเอียด",
        "status": {
            Status.OPEN.value: "เปิดคำขอใหม่",
            Status.IN_PROGRESS.value: "กำลังดำเนินการ",
            Status.COMPLETED.value: "เสร็จสิ้น",
            Status.CANCELED.value: "ยกเลิก",
        },
    },
}


def _texts() -> dict:
    return _TEXTS[settings.notification_locale]


def status_label(status: str) -> str:
    return _texts()["status"].get(status, status)


def _machine_name(request: MaintenanceRequest) -> str:
    machine = request.machine
    return machine.name if machine is not None else _texts()["machine_fallback"]


def request_created(request: MaintenanceRequest) -> Notification:
    description = (request.description or "")[:50] or _texts()["no_description"]
    return Notification(
        title=_texts()["created_title"],
        body=f"{_machine_name(request)}: {description}...",
        url=f"/requests/{request.id}",
        tag=f"request-{request.id}",
        data={"requestId": str(request.id), "type": "REQUEST_CREATED"},
    )


def technician_assigned(request: MaintenanceRequest) -> Notification:
    return Notification(
        title=_texts()["assigned_title"],
        body=_texts()["assigned_body"].format(machine=_machine_name(request)),
        url=f"/requests/{request.id}",
        tag=f"assignment-{request.id}",
        data={"requestId": str(request.id), "type": "NEW_ASSIGNMENT"},
    )


def status_changed(request: MaintenanceRequest) -> Notification:
    return Notification(
        title=_texts()["status_title"],
        body=f"{_machine_name(request)}: {status_label(request.status)}",
        url=f"/requests/{request.id}",
        tag=f"status-{request.id}",
        data={
            "requestId": str(request.id),
            "type": "STATUS_CHANGED",
            "newStatus": request.status,
        },
    )


def self_test_notification() -> Notification:
    return Notification(
        title=_texts()["test_title"],
        body=_texts()["test_body"],
        url="/dashboard",
        tag="test-notification",
    )
