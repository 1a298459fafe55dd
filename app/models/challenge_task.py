from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from app.models.base import Base

TASK_SOURCES = ("daily-challenge", "moving-plan", "manual")


class ChallengeTask(Base):
    """Dated, completable to-do shown on the challenge calendar."""

    __tablename__ = "lgb_challenge_tasks"
    __table_args__ = (
        Index("idx_lgb_tasks_user_date", "user_id", "scheduled_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    session_id = Column(Integer, ForeignKey("lgb_sessions.id"), nullable=True)
    source = Column(String(32), nullable=False, default="manual", server_default="manual")
    name = Column(String(300), nullable=False)
    scheduled_date = Column(Date, nullable=False)
    completed = Column(Boolean, nullable=False, default=False, server_default="0")
    completed_at = Column(DateTime(timezone=True))
    reflection = Column(Text)
    tip = Column(Text)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


__all__ = ["ChallengeTask", "TASK_SOURCES"]
