"""Credit account and usage history models."""

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB

from wadi.database import Base


class CreditAccount(Base):
    """Per-user credit balance."""

    __tablename__ = "billing_info"

    user_id = Column(Text, primary_key=True)
    plan = Column(Text, nullable=False, default="free")  # 'free', 'pro', 'business'
    credits = Column(Integer, nullable=False, default=0)
    credits_used = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_billing_info_credits_non_negative"),
    )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "plan": self.plan,
            "credits": self.credits,
            "credits_used": self.credits_used,
        }


class CreditHistory(Base):
    """Immutable record of one debit or credit."""

    __tablename__ = "credit_usage_history"

    entry_pk = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, ForeignKey("billing_info.user_id", ondelete="CASCADE"), nullable=False)
    entry_type = Column(Text, nullable=False)  # 'debit' or 'credit'
    amount = Column(Integer, nullable=False)  # Always positive, direction is entry_type
    reason = Column(Text, nullable=False)
    meta = Column("metadata", JSON().with_variant(JSONB, "postgresql"))
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_credit_history_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.entry_pk,
            "type": self.entry_type,
            "amount": self.amount,
            "reason": self.reason,
            "metadata": self.meta or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
