"""Project model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text, Uuid

from wadi.database import Base


class Project(Base):
    """Project groups the runs, sessions and memories of one user."""

    __tablename__ = "projects"

    project_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_projects_user_id", "user_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.project_id),
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
