from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.truinventory.models import Base, JSONType, new_id

if TYPE_CHECKING:
    from app.truinventory.modules.categories.models import Category
    from app.truinventory.modules.locations.models import Location


class Item(Base):
    __tablename__ = "items"
    __table_args__ = (
        Index("idx_items_name", "name"),
        Index("idx_items_category", "category_id"),
        Index("idx_items_location", "location_id"),
        Index("idx_items_updated_at", "updated_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    qr_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    location_id: Mapped[str] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False)

    # Values keyed by CustomField.id
    custom_fields: Mapped[dict | None] = mapped_column(JSONType, nullable=True, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    category: Mapped["Category"] = relationship("Category", back_populates="items", lazy="joined")
    location: Mapped["Location"] = relationship("Location", back_populates="items", lazy="joined")
