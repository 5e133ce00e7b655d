"""Socket endpoint."""

from typing import Callable

from fastapi import APIRouter, Depends, WebSocket
from sqlalchemy.orm import Session

from wadi.config import settings
from wadi.database import get_session_factory
from wadi.dependencies import (
    OrchestratorFactory,
    get_connection_registry,
    get_identity_client,
    get_orchestrator_factory,
)
from wadi.services.auth import IdentityClient
from wadi.services.connections import ConnectionRegistry
from wadi.services.socket_protocol import SocketSession

router = APIRouter(tags=["ws"])


@router.websocket("/ws")
async def socket_endpoint(
    websocket: WebSocket,
    registry: ConnectionRegistry = Depends(get_connection_registry),
    identity: IdentityClient = Depends(get_identity_client),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    orchestrator_factory: OrchestratorFactory = Depends(get_orchestrator_factory),
):
    session = SocketSession(
        websocket,
        registry,
        identity,
        session_factory,
        orchestrator_factory,
        heartbeat_seconds=settings.WS_HEARTBEAT_SECONDS,
        auth_timeout=settings.WS_AUTH_TIMEOUT_SECONDS,
    )
    await session.serve()
