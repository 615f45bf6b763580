from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.truinventory.models import Base, JSONType, new_id

if TYPE_CHECKING:
    from app.truinventory.modules.items.models import Item


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    custom_fields: Mapped[list["CustomField"]] = relationship(
        "CustomField",
        back_populates="category",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CustomField.created_at",
    )
    items: Mapped[list["Item"]] = relationship("Item", back_populates="category", lazy="select")


class CustomField(Base):
    """
    Category-defined attribute. Items of the category store the value under
    this field's id in `Item.custom_fields`.
    """

    __tablename__ = "custom_fields"
    __table_args__ = (Index("idx_custom_fields_category", "category_id"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="text")  # text, number, date, boolean, select
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    options: Mapped[list | None] = mapped_column(JSONType, nullable=True, default=list)  # select choices

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    category: Mapped["Category"] = relationship("Category", back_populates="custom_fields")
