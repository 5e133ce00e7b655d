"""Vector memory model."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from wadi.database import Base


class MemoryEntry(Base):
    """Stored (content, embedding) pair owned by a (user, project)."""

    __tablename__ = "memories"

    memory_pk = Column(Integer, primary_key=True, autoincrement=True)
    memory_id = Column(Uuid(as_uuid=True), nullable=False, unique=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    meta = Column("metadata", JSON().with_variant(JSONB, "postgresql"))
    run_id = Column(Uuid(as_uuid=True), ForeignKey("runs.run_id", ondelete="SET NULL"))
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_memories_user_project", "user_id", "project_id"),
        Index("idx_memories_project_created", "project_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.memory_id),
            "project_id": str(self.project_id),
            "content": self.content,
            "metadata": self.meta or {},
            "run_id": str(self.run_id) if self.run_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
