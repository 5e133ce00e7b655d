"""Project ownership checks and active-session resolution."""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wadi.errors import InvalidInputError, ProjectNotFoundError
from wadi.models.project import Project
from wadi.models.session import ChatSession

logger = logging.getLogger(__name__)


def parse_uuid(value, label: str = "id") -> uuid.UUID:
    """Coerce a client-supplied id into a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid {label}")


def get_owned_project(db: Session, user_id: str, project_id) -> Project:
    """Return the project if it exists and belongs to the user."""
    project = (
        db.query(Project)
        .filter(Project.project_id == parse_uuid(project_id, "project id"), Project.user_id == user_id)
        .first()
    )
    if not project:
        raise ProjectNotFoundError()
    return project


def _find_active(db: Session, user_id: str, project_id: uuid.UUID) -> Optional[ChatSession]:
    return (
        db.query(ChatSession)
        .filter(
            ChatSession.user_id == user_id,
            ChatSession.project_id == project_id,
            ChatSession.is_active.is_(True),
        )
        .first()
    )


def get_or_create_active_session(db: Session, user_id: str, project_id: uuid.UUID) -> ChatSession:
    """
    Reuse the active session for (user, project) or open one.

    The partial unique index on active sessions makes the insert the
    arbiter: a concurrent request that loses the race gets an
    IntegrityError and reuses the winner's session.
    """
    session = _find_active(db, user_id, project_id)
    if session:
        return session

    session = ChatSession(user_id=user_id, project_id=project_id, is_active=True)
    db.add(session)
    try:
        db.commit()
        logger.info(f"Opened session {session.session_id} for project {project_id}")
        return session
    except IntegrityError:
        db.rollback()

    session = _find_active(db, user_id, project_id)
    if session is None:
        raise RuntimeError(f"Active session for project {project_id} vanished after conflict")
    return session


def end_active_session(db: Session, user_id: str, project_id: uuid.UUID) -> Optional[ChatSession]:
    """Deactivate the active session, if any. The next run opens a new one."""
    session = _find_active(db, user_id, project_id)
    if not session:
        return None

    session.is_active = False
    session.ended_at = datetime.utcnow()
    db.commit()
    logger.info(f"Ended session {session.session_id} for project {project_id}")
    return session
