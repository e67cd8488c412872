"""Group/chat membership, cascading deletion and realtime events."""
