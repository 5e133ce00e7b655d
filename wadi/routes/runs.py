"""Run routes."""

import json
import logging
from typing import Callable

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from wadi.database import get_db, get_session_factory
from wadi.dependencies import OrchestratorFactory, get_current_user, get_orchestrator_factory
from wadi.errors import NotFoundError
from wadi.models.run import Run
from wadi.schemas.run import RunCreate, RunCreateResponse, RunRename
from wadi.services.sessions import get_owned_project, parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(tags=["runs"])


def _get_owned_run(db: Session, user_id: str, run_id: str) -> Run:
    run = (
        db.query(Run)
        .filter(Run.run_id == parse_uuid(run_id, "run id"), Run.user_id == user_id)
        .first()
    )
    if not run:
        raise NotFoundError("Run not found")
    return run


@router.get("/projects/{project_id}/runs")
def list_runs(
    project_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List a project's runs, newest first."""
    project = get_owned_project(db, user_id, project_id)
    runs = (
        db.query(Run)
        .filter(Run.project_id == project.project_id, Run.user_id == user_id)
        .order_by(Run.created_at.desc())
        .limit(limit)
        .all()
    )
    return {"runs": [r.to_dict() for r in runs]}


@router.post("/projects/{project_id}/runs", response_model=RunCreateResponse, status_code=201)
def create_run(
    project_id: str,
    data: RunCreate,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    orchestrator_factory: OrchestratorFactory = Depends(get_orchestrator_factory),
):
    """Generate a response in one shot and bill for it."""
    result = orchestrator_factory(db).create_run(user_id, project_id, data.input, data.model)
    logger.info(f"Created run {result.run.run_id} for user {user_id}")
    return result.to_dict()


@router.post("/projects/{project_id}/runs/stream")
def stream_run(
    project_id: str,
    data: RunCreate,
    user_id: str = Depends(get_current_user),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    orchestrator_factory: OrchestratorFactory = Depends(get_orchestrator_factory),
):
    """
    Generate a response as Server-Sent Events.

    Validation, ownership and credit errors are returned as ordinary JSON
    errors; once the stream opens, failures arrive as an ``error`` event.
    """
    # The stream outlives this handler, so it owns its database session
    db = session_factory()
    try:
        orchestrator = orchestrator_factory(db)
        ticket = orchestrator.reserve(user_id, project_id, data.input, data.model)
    except Exception:
        db.close()
        raise

    def event_stream():
        events = orchestrator.stream(ticket)
        try:
            for event in events:
                yield f"data: {json.dumps(event)}\n\n"
        finally:
            events.close()
            db.close()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/runs/{run_id}")
def get_run(
    run_id: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_owned_run(db, user_id, run_id).to_dict()


@router.patch("/runs/{run_id}")
def rename_run(
    run_id: str,
    data: RunRename,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Set or clear a run's display name. Output and status are untouched."""
    run = _get_owned_run(db, user_id, run_id)
    run.custom_name = data.custom_name.strip() if data.custom_name else None
    db.commit()
    return run.to_dict()
