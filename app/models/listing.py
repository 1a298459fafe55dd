from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.models.base import Base

LANGUAGES = ("en", "ko")
TONES = ("plain", "friendly")


class Listing(Base):
    """AI-generated marketplace copy for one item in one language."""

    __tablename__ = "lgb_listings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("lgb_items.id"), nullable=False, index=True)
    lang = Column(String(8), nullable=False)
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    hashtags = Column(JSON, nullable=False, default=list)
    channels = Column(JSON, nullable=False, default=list)
    tone = Column(String(16))
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    item = relationship("Item", back_populates="listings")
