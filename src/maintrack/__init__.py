"""MainTrack — maintenance request tracking.

Requests move through open → in progress → completed/canceled. Every
transition is written to an append-only audit log, broadcast to connected
WebSocket clients, and pushed to offline devices via Web Push.
"""

__version__ = "0.1.0"
