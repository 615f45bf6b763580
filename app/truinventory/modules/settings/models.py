from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.truinventory.models import Base, new_id


class Settings(Base):
    """Singleton row holding Azure AD application credentials."""

    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    azure_client_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    azure_tenant_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    azure_client_secret: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
