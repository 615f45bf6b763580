"""
Central constants for the TruInventory application.
"""
from __future__ import annotations

# User roles. USER is the pre-RBAC role, kept so old accounts keep working.
ROLE_ADMIN = "ADMIN"
ROLE_EDITOR = "EDITOR"
ROLE_READ_ONLY = "READ_ONLY"
ROLE_USER = "USER"
ROLES = (ROLE_ADMIN, ROLE_EDITOR, ROLE_READ_ONLY, ROLE_USER)
DEFAULT_ROLE = ROLE_EDITOR

# Audit actions
ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_DELETE = "DELETE"
ACTION_LOGIN = "LOGIN"
ACTION_LOGIN_FAILED = "LOGIN_FAILED"
ACTION_LOGOUT = "LOGOUT"

# Custom field types a category may define
CUSTOM_FIELD_TYPES = frozenset({"text", "number", "date", "boolean", "select"})

# Field ids used by the first seeded catalogue, before fields had generated ids.
LEGACY_CUSTOM_FIELD_NAMES = {
    "cf_01": "Color",
    "cf_02": "Size",
    "cf_03": "Material",
    "cf_04": "Unit Type",
    "cf_05": "Warranty Period",
    "cf_06": "Power Type",
    "cf_07": "Voltage",
    "cf_08": "Tool Size",
}

QR_CODE_PREFIX = "ITEM-"
