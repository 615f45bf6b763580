from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.truinventory.audit import record_event
from app.truinventory.constants import ACTION_UPDATE
from app.truinventory.modules.settings.models import Settings
from app.truinventory.utils import clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.truinventory.models import User


# Request key -> column on the settings row.
AZURE_FIELDS = {
    "azureClientId": "azure_client_id",
    "azureTenantId": "azure_tenant_id",
    "azureClientSecret": "azure_client_secret",
}


@dataclass(frozen=True)
class AzureADConfig:
    client_id: str
    tenant_id: str
    client_secret: str


def get_settings(s: "Session") -> Settings | None:
    return s.query(Settings).order_by(Settings.created_at.asc()).first()


def settings_status(settings: Settings | None) -> dict[str, Any]:
    """Public view of the Azure AD settings. The client secret is reported only as present/absent."""
    return {
        "azureClientId": (settings.azure_client_id if settings else None) or "",
        "azureTenantId": (settings.azure_tenant_id if settings else None) or "",
        "hasAzureClientSecret": bool(settings and settings.azure_client_secret),
    }


def load_azure_config(s: "Session") -> AzureADConfig | None:
    settings = get_settings(s)
    if not settings:
        return None
    if not (settings.azure_client_id and settings.azure_tenant_id and settings.azure_client_secret):
        return None
    return AzureADConfig(
        client_id=settings.azure_client_id,
        tenant_id=settings.azure_tenant_id,
        client_secret=settings.azure_client_secret,
    )


def update_settings(s: "Session", values: dict[str, Any], user: "User") -> Settings:
    """
    Write the supplied Azure AD fields onto the singleton row, creating it if needed.
    Keys absent from `values` are left as they are; blank strings clear a value.
    """
    settings = get_settings(s)
    now = datetime.utcnow()
    if settings is None:
        settings = Settings(created_at=now, updated_at=now)
        s.add(settings)

    updated: list[str] = []
    for key, column in AZURE_FIELDS.items():
        if key not in values:
            continue
        setattr(settings, column, clean_str(values[key]))
        updated.append(key)

    settings.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action=ACTION_UPDATE,
        event_type="SETTINGS_UPDATED",
        details={"updatedFields": updated},
    )
    return settings
