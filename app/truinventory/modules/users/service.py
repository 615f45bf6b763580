from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_
from werkzeug.security import generate_password_hash

from app.truinventory.audit import record_event
from app.truinventory.constants import ACTION_CREATE, ACTION_DELETE, ACTION_UPDATE, DEFAULT_ROLE, ROLES
from app.truinventory.models import User
from app.truinventory.rbac import permissions_for_role, role_description, role_name
from app.truinventory.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


KEEP = object()

EMAIL_TAKEN = "User already exists"
MIN_PASSWORD_LENGTH = 8

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def normalize_email(email: Any) -> str:
    return str(email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def validate_password(password: Any) -> str:
    password = password if isinstance(password, str) else ""
    if not password:
        raise ValueError("Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def validate_role(role: Any) -> str:
    role = str(role or "").strip().upper()
    if role not in ROLES:
        raise ValueError(f"Invalid role. Must be one of: {', '.join(ROLES)}")
    return role


def user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "roleName": role_name(user.role),
        "isActive": user.is_active,
        "createdAt": iso(user.created_at),
    }


def roles_payload() -> list[dict[str, Any]]:
    return [
        {
            "key": role,
            "name": role_name(role),
            "description": role_description(role),
            "permissions": [p.value for p in permissions_for_role(role)],
        }
        for role in ROLES
    ]


def find_by_email(s: "Session", email: str) -> User | None:
    return s.query(User).filter(func.lower(User.email) == normalize_email(email)).one_or_none()


def list_users(s: "Session", search: str | None = None) -> list[User]:
    q = s.query(User)
    if search:
        q = q.filter(
            or_(
                User.name.icontains(search, autoescape=True),
                User.email.icontains(search, autoescape=True),
            )
        )
    return q.order_by(User.created_at.desc(), User.id.asc()).all()


def create_user(
    s: "Session",
    *,
    email: str,
    password: str,
    name: str,
    role: str | None,
    actor: User | None,
) -> User:
    email = normalize_email(email)
    if not is_valid_email(email):
        raise ValueError("Invalid email format")
    password = validate_password(password)
    role = validate_role(role) if role else DEFAULT_ROLE
    if find_by_email(s, email):
        raise ValueError(EMAIL_TAKEN)

    now = datetime.utcnow()
    user = User(
        email=email,
        name=name,
        password_hash=generate_password_hash(password),
        role=role,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()

    record_event(
        s,
        actor=actor or user,
        action=ACTION_CREATE,
        event_type="USER_CREATED",
        details={"targetUserId": user.id, "targetUserEmail": user.email, "role": user.role},
    )
    return user


def update_user(
    s: "Session",
    user: User,
    actor: User,
    *,
    email: Any = KEEP,
    name: Any = KEEP,
    role: Any = KEEP,
    password: Any = KEEP,
) -> User:
    """Partial update; the audit row lists the field names that were supplied."""
    updated: list[str] = []

    if role is not KEEP:
        role = validate_role(role)
        if user.id == actor.id and role != user.role:
            raise ValueError("Cannot change your own role")
        user.role = role
        updated.append("role")

    if name is not KEEP:
        user.name = name
        updated.append("name")

    if email is not KEEP:
        email = normalize_email(email)
        if not is_valid_email(email):
            raise ValueError("Invalid email format")
        existing = find_by_email(s, email)
        if existing and existing.id != user.id:
            raise ValueError(EMAIL_TAKEN)
        user.email = email
        updated.append("email")

    if password is not KEEP:
        user.password_hash = generate_password_hash(validate_password(password))
        updated.append("password")

    user.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=actor,
        action=ACTION_UPDATE,
        event_type="USER_UPDATED",
        details={"targetUserId": user.id, "targetUserEmail": user.email, "updatedFields": updated},
    )
    return user


def delete_user(s: "Session", user: User, actor: User) -> dict[str, Any]:
    """Remove the account. Its audit rows stay, with user_id cleared by the FK."""
    if user.id == actor.id:
        raise ValueError("Cannot delete your own account")

    snapshot = {"id": user.id, "email": user.email}
    s.delete(user)
    s.flush()

    record_event(
        s,
        actor=actor,
        action=ACTION_DELETE,
        event_type="USER_DELETED",
        details={"targetUserId": snapshot["id"], "targetUserEmail": snapshot["email"]},
    )
    return snapshot
