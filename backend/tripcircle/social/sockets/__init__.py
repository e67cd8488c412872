"""Socket.IO delivery for social realtime events."""
