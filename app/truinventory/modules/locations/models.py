from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.truinventory.models import Base, new_id

if TYPE_CHECKING:
    from app.truinventory.modules.items.models import Item


class Location(Base):
    """
    Storage location tree node (materialized path).

    - path:      ancestor ids joined by "/", e.g. "/" for roots, "/<root-id>/" for its children
    - full_path: ancestor names, e.g. "/Warehouse/Shelf A"
    - level:     0 for roots
    """

    __tablename__ = "locations"
    __table_args__ = (
        Index("idx_locations_parent", "parent_id"),
        Index("idx_locations_path", "path"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    parent_id: Mapped[str | None] = mapped_column(ForeignKey("locations.id", ondelete="CASCADE"), nullable=True)
    path: Mapped[str] = mapped_column(String(2048), nullable=False, default="/")
    full_path: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    parent: Mapped["Location | None"] = relationship("Location", remote_side="Location.id", back_populates="children")
    children: Mapped[list["Location"]] = relationship(
        "Location",
        back_populates="parent",
        cascade="all",
        order_by="Location.name",
    )
    items: Mapped[list["Item"]] = relationship("Item", back_populates="location", lazy="select")

    @property
    def subtree_path_prefix(self) -> str:
        """`path` prefix shared by every descendant of this node."""
        return f"{self.path}{self.id}/"
