"""FastAPI dependencies shared by the routes."""

from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from wadi.services.auth import IdentityClient, bearer_token
from wadi.services.connections import ConnectionRegistry, InMemoryConnectionRegistry
from wadi.services.llm_client import ProviderClient
from wadi.services.orchestrator import RunOrchestrator
from wadi.services.vector_memory import VectorMemoryService

OrchestratorFactory = Callable[[Session], RunOrchestrator]


@lru_cache
def get_identity_client() -> IdentityClient:
    return IdentityClient()


@lru_cache
def get_provider() -> ProviderClient:
    return ProviderClient()


@lru_cache
def get_connection_registry() -> ConnectionRegistry:
    return InMemoryConnectionRegistry()


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    identity: IdentityClient = Depends(get_identity_client),
) -> str:
    """Resolve the caller's user id from the bearer token."""
    return identity.get_user_id(bearer_token(authorization))


def get_orchestrator_factory(
    provider: ProviderClient = Depends(get_provider),
) -> OrchestratorFactory:
    """Build orchestrators bound to a given database session."""

    def factory(db: Session) -> RunOrchestrator:
        return RunOrchestrator(db, provider, memory=VectorMemoryService(db, provider))

    return factory
