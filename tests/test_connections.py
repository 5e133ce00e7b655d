"""Tests for the connection registry."""

import asyncio

from wadi.services.connections import (
    InMemoryConnectionRegistry,
    StreamConnection,
    broadcast_to_user,
    generate_connection_id,
)


class RecordingSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


def test_register_and_list_by_user():
    """Test connections are indexed by user."""
    registry = InMemoryConnectionRegistry()
    registry.register(StreamConnection("c1", "alice", RecordingSocket()))
    registry.register(StreamConnection("c2", "alice", RecordingSocket()))
    registry.register(StreamConnection("c3", "bob", RecordingSocket()))

    assert {c.connection_id for c in registry.list_by_user("alice")} == {"c1", "c2"}
    assert [c.connection_id for c in registry.list_by_user("bob")] == ["c3"]
    assert registry.list_by_user("carol") == []


def test_unregister():
    """Test unregistering is idempotent and cleans the user index."""
    registry = InMemoryConnectionRegistry()
    registry.register(StreamConnection("c1", "alice", RecordingSocket()))

    registry.unregister("c1")
    registry.unregister("c1")

    assert registry.list_by_user("alice") == []
    assert registry.get("c1") is None


def test_connection_ids_are_unique():
    """Test generated ids do not collide."""
    assert len({generate_connection_id() for _ in range(100)}) == 100


def test_broadcast_skips_dead_sockets():
    """Test broadcast reaches live sockets and counts deliveries."""
    registry = InMemoryConnectionRegistry()
    live = RecordingSocket()
    registry.register(StreamConnection("c1", "alice", live))
    registry.register(StreamConnection("c2", "alice", RecordingSocket(fail=True)))

    delivered = asyncio.run(broadcast_to_user(registry, "alice", {"type": "ping"}))

    assert delivered == 1
    assert live.sent == [{"type": "ping"}]
