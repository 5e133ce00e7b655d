"""Vector memory routes."""

import logging

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from wadi.database import get_db
from wadi.dependencies import get_current_user, get_provider
from wadi.errors import NotFoundError
from wadi.schemas.memory import MemoryContextRequest, MemoryCreate, MemorySearch
from wadi.services.llm_client import ProviderClient
from wadi.services.sessions import get_owned_project, parse_uuid
from wadi.services.vector_memory import VectorMemoryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["memory"])


def get_memory_service(
    db: Session = Depends(get_db),
    provider: ProviderClient = Depends(get_provider),
) -> VectorMemoryService:
    return VectorMemoryService(db, provider)


@router.get("/projects/{project_id}/memories")
def list_memories(
    project_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    memory: VectorMemoryService = Depends(get_memory_service),
):
    project = get_owned_project(db, user_id, project_id)
    entries = memory.list_memories(user_id, project.project_id, limit)
    return {"memories": [e.to_dict() for e in entries]}


@router.post("/projects/{project_id}/memories", status_code=201)
def store_memory(
    project_id: str,
    data: MemoryCreate,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    memory: VectorMemoryService = Depends(get_memory_service),
):
    project = get_owned_project(db, user_id, project_id)
    memory_id = memory.store(user_id, project.project_id, data.content, data.metadata)
    return {"id": str(memory_id)}


@router.delete("/projects/{project_id}/memories")
def clear_memories(
    project_id: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    memory: VectorMemoryService = Depends(get_memory_service),
):
    project = get_owned_project(db, user_id, project_id)
    return {"deleted": memory.clear_project(user_id, project.project_id)}


@router.post("/projects/{project_id}/memories/search")
def search_memories(
    project_id: str,
    data: MemorySearch,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    memory: VectorMemoryService = Depends(get_memory_service),
):
    """Memories similar to the query, best match first."""
    project = get_owned_project(db, user_id, project_id)
    results = memory.search(user_id, project.project_id, data.query, data.limit)
    return {"results": [r.to_dict() for r in results]}


@router.post("/projects/{project_id}/memories/context")
def memory_context(
    project_id: str,
    data: MemoryContextRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    memory: VectorMemoryService = Depends(get_memory_service),
):
    project = get_owned_project(db, user_id, project_id)
    return {"context": memory.get_context(user_id, project.project_id, data.query, data.max_tokens)}


@router.delete("/memories/{memory_id}", status_code=204)
def delete_memory(
    memory_id: str,
    user_id: str = Depends(get_current_user),
    memory: VectorMemoryService = Depends(get_memory_service),
):
    if not memory.delete_memory(parse_uuid(memory_id, "memory id"), user_id):
        raise NotFoundError("Memory not found")
    return Response(status_code=204)
