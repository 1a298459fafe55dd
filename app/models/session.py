from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from app.models.base import Base

SCENARIOS = ("item-triage", "moving-assistant", "daily-challenge", "quick-listing")
SESSION_STATUSES = ("active", "completed", "archived")
TRADE_METHODS = ("meet", "ship", "both")


class DeclutterSession(Base):
    """One user engagement with the Let Go Buddy workflow."""

    __tablename__ = "lgb_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    scenario = Column(Enum(*SCENARIOS, name="lgb_scenario"), nullable=False)
    title = Column(String(200))
    status = Column(
        Enum(*SESSION_STATUSES, name="lgb_session_status"),
        nullable=False,
        default="active",
        server_default="active",
    )
    move_date = Column(Date)
    region = Column(String(120))
    trade_method = Column(Enum(*TRADE_METHODS, name="lgb_trade_method"))
    challenge_days = Column(Integer)
    ai_plan_generated = Column(Boolean, nullable=False, default=False, server_default="0")
    moving_plan = Column(JSON)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    items = relationship("Item", back_populates="session", order_by="Item.id")
