from collections.abc import Callable
from enum import Enum
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify, request

from app.truinventory.constants import ROLE_ADMIN, ROLE_EDITOR, ROLE_READ_ONLY, ROLE_USER
from app.truinventory.models import User


class Permission(str, Enum):
    READ = "read"
    EDIT = "edit"
    ADMIN = "admin"


ROLE_PERMISSIONS: dict[str, tuple[Permission, ...]] = {
    ROLE_ADMIN: (Permission.READ, Permission.EDIT, Permission.ADMIN),
    ROLE_EDITOR: (Permission.READ, Permission.EDIT),
    ROLE_READ_ONLY: (Permission.READ,),
    ROLE_USER: (Permission.READ, Permission.EDIT),  # legacy, same as EDITOR
}

ROLE_NAMES = {
    ROLE_ADMIN: "Administrator",
    ROLE_EDITOR: "Editor",
    ROLE_READ_ONLY: "Read Only",
    ROLE_USER: "User",
}

ROLE_DESCRIPTIONS = {
    ROLE_ADMIN: "Full access to all features, including user management and settings",
    ROLE_EDITOR: "Can view, add, edit, and delete inventory items",
    ROLE_READ_ONLY: "Can only view inventory items and reports",
    ROLE_USER: "Standard user with edit permissions (legacy)",
}


def has_permission(role: str | None, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(role or "", ())


def permissions_for_role(role: str | None) -> list[Permission]:
    return list(ROLE_PERMISSIONS.get(role or "", ()))


def role_name(role: str) -> str:
    return ROLE_NAMES.get(role, role)


def role_description(role: str) -> str:
    return ROLE_DESCRIPTIONS.get(role, "")


def user_has_permission(user: User | None, permission: Permission) -> bool:
    if not user or not user.is_active:
        return False
    return has_permission(user.role, permission)


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return jsonify({"error": "Unauthorized"}), 401
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission: Permission) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated → 401
            if not user or not user.is_active:
                return jsonify({"error": "Unauthorized"}), 401
            # Authenticated but unauthorized → 403
            if not user_has_permission(user, permission):
                g.missing_permission = permission.value
                current_app.logger.warning(
                    "Forbidden: user=%s role=%s missing_permission=%s path=%s request_id=%s",
                    user.email,
                    user.role,
                    permission.value,
                    request.path,
                    getattr(g, "request_id", None),
                )
                return jsonify({"error": "Forbidden"}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator
