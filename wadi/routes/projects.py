"""Project routes."""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from wadi.database import get_db
from wadi.dependencies import get_current_user
from wadi.models import ChatSession, MemoryEntry, Project, Run
from wadi.schemas.project import ProjectCreate
from wadi.services.sessions import end_active_session, get_owned_project

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", status_code=201)
def create_project(
    data: ProjectCreate,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    project = Project(user_id=user_id, name=data.name.strip(), description=data.description)
    db.add(project)
    db.commit()

    logger.info(f"Created project {project.project_id} for user {user_id}")

    return project.to_dict()


@router.get("")
def list_projects(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    projects = (
        db.query(Project)
        .filter(Project.user_id == user_id)
        .order_by(Project.created_at.desc())
        .all()
    )
    return {"projects": [p.to_dict() for p in projects]}


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a project together with its memories, runs and sessions."""
    project = get_owned_project(db, user_id, project_id)
    pid = project.project_id

    # Children first; SQLite does not enforce ON DELETE CASCADE by default
    db.query(MemoryEntry).filter(MemoryEntry.project_id == pid).delete(synchronize_session=False)
    db.query(Run).filter(Run.project_id == pid).delete(synchronize_session=False)
    db.query(ChatSession).filter(ChatSession.project_id == pid).delete(synchronize_session=False)
    db.delete(project)
    db.commit()

    logger.info(f"Deleted project {pid}")

    return Response(status_code=204)


@router.post("/{project_id}/session/end")
def end_session(
    project_id: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """End the active session; the next run opens a fresh one."""
    project = get_owned_project(db, user_id, project_id)
    session = end_active_session(db, user_id, project.project_id)
    return {
        "ended": session is not None,
        "session_id": str(session.session_id) if session else None,
    }
