from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class ItemPhoto(Base):
    __tablename__ = "lgb_item_photos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("lgb_items.id"), nullable=False, index=True)
    storage_path = Column(String, nullable=False)
    content_type = Column(String(64))
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    item = relationship("Item", back_populates="photos")
