from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.models.base import Base

DECISIONS = ("keep", "sell", "donate", "dispose")
# analyzing: AI call pending; analyzed: AI result stored; error: AI call failed;
# limit_reached: refused by the quota ledger; manual: never sent to AI.
ITEM_STATUSES = ("analyzing", "analyzed", "error", "limit_reached", "manual")


class Item(Base):
    """Physical object a user is deciding about."""

    __tablename__ = "lgb_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("lgb_sessions.id"), nullable=False, index=True)
    title = Column(String(200))
    notes = Column(Text)
    category = Column(String(80))
    condition = Column(String(40))
    decision = Column(Enum(*DECISIONS, name="lgb_decision"))
    decision_reason = Column(Text)
    price_low = Column(Float)
    price_mid = Column(Float)
    price_high = Column(Float)
    price_confidence = Column(Float)
    price_rationale = Column(Text)
    usage_score = Column(Integer)
    sentiment = Column(String(40))
    ai_recommendation = Column(String(20))
    ai_rationale = Column(Text)
    status = Column(
        Enum(*ITEM_STATUSES, name="lgb_item_status"),
        nullable=False,
        default="analyzing",
        server_default="analyzing",
    )
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    session = relationship("DeclutterSession", back_populates="items")
    photos = relationship("ItemPhoto", back_populates="item", order_by="ItemPhoto.id")
    listings = relationship("Listing", back_populates="item", order_by="Listing.id")
