"""Realtime infrastructure — in-process rooms + WebSocket.

Services emit through the RoomBroadcaster after each committed mutation;
the WebSocket endpoint registers connections and their room memberships.
"""
