"""SQLAlchemy ORM models."""

from wadi.models.project import Project
from wadi.models.session import ChatSession
from wadi.models.run import Run
from wadi.models.credit import CreditAccount, CreditHistory
from wadi.models.memory import MemoryEntry

__all__ = [
    "Project",
    "ChatSession",
    "Run",
    "CreditAccount",
    "CreditHistory",
    "MemoryEntry",
]
