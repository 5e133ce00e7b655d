"""Chat session model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, Uuid, text

from wadi.database import Base


class ChatSession(Base):
    """A grouping of runs for a project, at most one active per (user, project)."""

    __tablename__ = "sessions"

    session_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    ended_at = Column(DateTime)

    __table_args__ = (
        # One active session per (user, project), enforced by the database
        Index(
            "uq_sessions_active_per_project",
            "user_id",
            "project_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )
