"""Socket transport: auth handshake, streamed runs, cooperative stop, heartbeat.

Client -> server: ``auth``, ``run``, ``stop``, ``ping``.
Server -> client: ``authenticated``, ``status``, ``chunk``, ``complete``,
``error``, ``ping``, ``pong``.
"""

import asyncio
import json
import logging
import threading
import uuid
from typing import Any, Callable, Dict, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.concurrency import iterate_in_threadpool, run_in_threadpool
from sqlalchemy.orm import Session

from wadi.errors import AuthenticationError, WadiError
from wadi.services.auth import IdentityClient
from wadi.services.connections import ConnectionRegistry, StreamConnection, generate_connection_id
from wadi.services.orchestrator import RunOrchestrator

logger = logging.getLogger(__name__)


class SocketSession:
    """Protocol state for one socket connection."""

    def __init__(
        self,
        websocket: WebSocket,
        registry: ConnectionRegistry,
        identity: IdentityClient,
        session_factory: Callable[[], Session],
        orchestrator_factory: Callable[[Session], RunOrchestrator],
        heartbeat_seconds: float = 30.0,
        auth_timeout: float = 30.0,
    ):
        self.websocket = websocket
        self.registry = registry
        self.identity = identity
        self.session_factory = session_factory
        self.orchestrator_factory = orchestrator_factory
        self.heartbeat_seconds = heartbeat_seconds
        self.auth_timeout = auth_timeout

        self.connection_id = generate_connection_id()
        self.user_id: Optional[str] = None
        self.closed = False

        self._send_lock = asyncio.Lock()
        self._stop_events: Dict[str, threading.Event] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None

    async def serve(self) -> None:
        """Accept the socket and process messages until it closes.

        A connection that has not authenticated within ``auth_timeout``
        seconds of connecting is sent an error and closed.
        """
        await self.websocket.accept()
        logger.info(f"Socket {self.connection_id} connected")
        heartbeat = asyncio.create_task(self._heartbeat())
        auth_deadline = asyncio.get_running_loop().time() + self.auth_timeout

        try:
            while not self.closed:
                if self.authenticated:
                    raw = await self.websocket.receive_text()
                else:
                    remaining = auth_deadline - asyncio.get_running_loop().time()
                    try:
                        raw = await asyncio.wait_for(self.websocket.receive_text(), timeout=max(remaining, 0))
                    except asyncio.TimeoutError:
                        await self._auth_timed_out()
                        break
                await self.handle(raw)
        except WebSocketDisconnect:
            logger.info(f"Socket {self.connection_id} disconnected")
        finally:
            self.closed = True
            heartbeat.cancel()
            for stop_event in self._stop_events.values():
                stop_event.set()
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            self.registry.unregister(self.connection_id)

    async def handle(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            await self.send({"type": "error", "error": "Invalid message"})
            return
        if not isinstance(message, dict):
            await self.send({"type": "error", "error": "Invalid message"})
            return

        message_type = message.get("type")

        if message_type == "auth":
            await self._authenticate(message.get("token"))
            return

        if not self.authenticated:
            await self.send({"type": "error", "error": "Not authenticated", "requestId": message.get("requestId")})
            return

        if message_type == "run":
            await self._start_run(message)
        elif message_type == "stop":
            await self._stop(message.get("requestId"))
        elif message_type == "ping":
            await self.send({"type": "pong"})
        elif message_type == "pong":
            pass
        else:
            await self.send({"type": "error", "error": f"Unknown message type: {message_type}"})

    async def send(self, message: Dict[str, Any]) -> bool:
        """Send a JSON message. Returns False once the socket is gone."""
        if self.closed:
            return False
        async with self._send_lock:
            try:
                await self.websocket.send_json(message)
                return True
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.info(f"Socket {self.connection_id} send failed: {e}")
                self.closed = True
                return False

    async def _authenticate(self, token: Optional[str]) -> None:
        if not token:
            await self.send({"type": "error", "error": "Token required"})
            return

        try:
            user_id = await run_in_threadpool(self.identity.get_user_id, token)
        except AuthenticationError as e:
            logger.info(f"Socket {self.connection_id} failed authentication: {e.message}")
            await self.send({"type": "error", "error": "Invalid token"})
            self.closed = True
            await self.websocket.close(code=1008)
            return

        existing = self.registry.get(self.connection_id)
        if existing is not None and existing.user_id != user_id:
            self.registry.unregister(self.connection_id)
        self.user_id = user_id
        self.registry.register(StreamConnection(self.connection_id, user_id, self.websocket))
        logger.info(f"Socket {self.connection_id} authenticated as {user_id}")
        await self.send({"type": "authenticated", "userId": user_id})

    async def _start_run(self, message: Dict[str, Any]) -> None:
        request_id = str(message.get("requestId") or uuid.uuid4())
        if request_id in self._stop_events:
            await self.send({"type": "error", "error": "Duplicate requestId", "requestId": request_id})
            return

        if not message.get("projectId") or not message.get("input"):
            await self.send({"type": "error", "error": "Project ID and input required", "requestId": request_id})
            return

        stop_event = threading.Event()
        self._stop_events[request_id] = stop_event
        task = asyncio.create_task(self._execute_run(message, request_id, stop_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute_run(self, message: Dict[str, Any], request_id: str, stop_event: threading.Event) -> None:
        db = self.session_factory()
        events = None
        try:
            orchestrator = self.orchestrator_factory(db)
            try:
                ticket = await run_in_threadpool(
                    orchestrator.reserve,
                    self.user_id,
                    message.get("projectId"),
                    message.get("input"),
                    message.get("model"),
                )
            except WadiError as e:
                await self.send({"type": "error", "error": e.message, "requestId": request_id})
                return

            await self.send({"type": "status", "status": "processing", "requestId": request_id})

            events = orchestrator.stream(ticket, should_stop=stop_event.is_set)
            async for event in iterate_in_threadpool(events):
                event_type = event["type"]
                if event_type == "chunk":
                    delivered = await self.send(
                        {"type": "chunk", "content": event["content"], "requestId": request_id}
                    )
                    if not delivered:
                        stop_event.set()
                elif event_type == "complete":
                    await self.send({"type": "complete", "run": event["run"], "requestId": request_id})
                elif event_type == "stopped":
                    await self.send({"type": "status", "status": "stopped", "requestId": request_id})
                elif event_type == "error":
                    await self.send({"type": "error", "error": event["message"], "requestId": request_id})
        except Exception as e:
            logger.error(f"Run request {request_id} failed: {e}", exc_info=True)
            await self.send({"type": "error", "error": "Failed to process request", "requestId": request_id})
        finally:
            if events is not None:
                await run_in_threadpool(events.close)
            self._stop_events.pop(request_id, None)
            await run_in_threadpool(db.close)

    async def _stop(self, request_id: Optional[str]) -> None:
        stop_event = self._stop_events.get(str(request_id)) if request_id else None
        if stop_event is None:
            await self.send({"type": "error", "error": "No active run for requestId", "requestId": request_id})
            return
        stop_event.set()
        logger.info(f"Stop requested for {request_id} on socket {self.connection_id}")

    async def _heartbeat(self) -> None:
        # Pong replies are not tracked; a dead peer surfaces as a failed send
        while not self.closed:
            await asyncio.sleep(self.heartbeat_seconds)
            if not await self.send({"type": "ping"}):
                return

    async def _auth_timed_out(self) -> None:
        logger.info(f"Socket {self.connection_id} did not authenticate within {self.auth_timeout}s")
        await self.send({"type": "error", "error": "Authentication timeout"})
        self.closed = True
        await self.websocket.close(code=1008)
