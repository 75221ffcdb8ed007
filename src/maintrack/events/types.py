"""Notification event type constants.

Centralizing event types as constants prevents typos and makes it easy
to discover every event the realtime channel can carry.
"""

# ─── Broadcast to every connection ───────────────────────

REQUEST_CREATED = "REQUEST_CREATED"
REQUEST_ASSIGNED = "REQUEST_ASSIGNED"
STATUS_CHANGED = "STATUS_CHANGED"

# ─── Room-scoped ─────────────────────────────────────────

NEW_ASSIGNMENT = "NEW_ASSIGNMENT"  # technician-{id}
REQUEST_UPDATED = "REQUEST_UPDATED"  # request-{id}
