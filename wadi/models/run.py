"""Run model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, Uuid

from wadi.database import Base

TERMINAL_STATUSES = ("complete", "stopped", "failed")


class Run(Base):
    """Run is one billed input -> output generation."""

    __tablename__ = "runs"

    run_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    session_id = Column(Uuid(as_uuid=True), ForeignKey("sessions.session_id", ondelete="SET NULL"))
    input = Column(Text, nullable=False)
    output = Column(Text, nullable=False, default="")
    model = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending")  # 'pending', 'complete', 'stopped', 'failed'
    custom_name = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_runs_project_created", "project_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": str(self.run_id),
            "user_id": self.user_id,
            "project_id": str(self.project_id),
            "session_id": str(self.session_id) if self.session_id else None,
            "input": self.input,
            "output": self.output,
            "model": self.model,
            "status": self.status,
            "custom_name": self.custom_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
