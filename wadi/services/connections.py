"""Registry of live socket connections, keyed by connection and by user."""

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class StreamConnection:
    """A live transport connection bound to an authenticated user."""

    connection_id: str
    user_id: str
    websocket: Any
    connected_at: float = field(default_factory=time.time)


def generate_connection_id() -> str:
    return f"conn_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


class ConnectionRegistry(ABC):
    """Where live connections are tracked.

    The in-process implementation suits a single worker; a shared backend
    (e.g. Redis) can implement the same interface for horizontal scaling.
    """

    @abstractmethod
    def register(self, connection: StreamConnection) -> None:
        ...

    @abstractmethod
    def unregister(self, connection_id: str) -> None:
        ...

    @abstractmethod
    def list_by_user(self, user_id: str) -> List[StreamConnection]:
        ...

    @abstractmethod
    def get(self, connection_id: str) -> Optional[StreamConnection]:
        ...


class InMemoryConnectionRegistry(ConnectionRegistry):
    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[str, StreamConnection] = {}
        self._by_user: Dict[str, Set[str]] = {}

    def register(self, connection: StreamConnection) -> None:
        with self._lock:
            self._connections[connection.connection_id] = connection
            self._by_user.setdefault(connection.user_id, set()).add(connection.connection_id)

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return
            ids = self._by_user.get(connection.user_id)
            if ids is not None:
                ids.discard(connection_id)
                if not ids:
                    del self._by_user[connection.user_id]

    def list_by_user(self, user_id: str) -> List[StreamConnection]:
        with self._lock:
            return [self._connections[cid] for cid in self._by_user.get(user_id, ())]

    def get(self, connection_id: str) -> Optional[StreamConnection]:
        with self._lock:
            return self._connections.get(connection_id)


async def broadcast_to_user(registry: ConnectionRegistry, user_id: str, message: Dict[str, Any]) -> int:
    """Send a message to every live connection of a user. Returns deliveries."""
    delivered = 0
    for connection in registry.list_by_user(user_id):
        try:
            await connection.websocket.send_json(message)
            delivered += 1
        except RuntimeError as e:
            logger.warning(f"Broadcast to {connection.connection_id} failed: {e}")
    return delivered
