from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError

from app.truinventory.db import db_session
from app.truinventory.models import User
from app.truinventory.modules.users.service import (
    EMAIL_TAKEN,
    KEEP,
    create_user,
    delete_user,
    find_by_email,
    list_users,
    roles_payload,
    update_user,
    user_to_dict,
)
from app.truinventory.rbac import Permission, require_login, require_permission
from app.truinventory.utils import clean_str, json_body

bp = Blueprint("users", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/users")
@require_permission(Permission.ADMIN)
def users_list():
    s = db_session()
    users = list_users(s, clean_str(request.args.get("search")))
    return jsonify([user_to_dict(u) for u in users])


@bp.post("/users")
@require_permission(Permission.ADMIN)
def users_create():
    s = db_session()
    u = _current_user()
    data = json_body()

    email = clean_str(data.get("email"))
    password = data.get("password")
    name = clean_str(data.get("name"))
    if not email or not password or not name:
        return jsonify({"error": "Missing required fields"}), 400

    try:
        user = create_user(s, email=email, password=password, name=name, role=clean_str(data.get("role")), actor=u)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    except IntegrityError:
        s.rollback()
        current_app.logger.warning("User create hit unique constraint (email=%s)", email)
        return jsonify({"error": EMAIL_TAKEN}), 400

    return jsonify(user_to_dict(user)), 201


def _update(user_id: str | None, data: dict):
    s = db_session()
    u = _current_user()
    if not user_id:
        return jsonify({"error": "Missing user ID"}), 400

    user = s.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    # Blank values leave the field untouched.
    fields = {}
    for key in ("email", "name", "role"):
        value = clean_str(data.get(key))
        fields[key] = value if value else KEEP
    fields["password"] = data.get("password") if data.get("password") else KEEP

    try:
        user = update_user(s, user, u, **fields)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    except IntegrityError:
        s.rollback()
        current_app.logger.warning("User update hit unique constraint (user_id=%s)", user_id)
        return jsonify({"error": EMAIL_TAKEN}), 400

    return jsonify(user_to_dict(user))


@bp.patch("/users")
@require_permission(Permission.ADMIN)
def users_update_by_body():
    data = json_body()
    return _update(clean_str(data.get("id")), data)


@bp.patch("/users/<user_id>")
@require_permission(Permission.ADMIN)
def users_update(user_id: str):
    return _update(user_id, json_body())


def _delete(user_id: str | None):
    s = db_session()
    u = _current_user()
    if not user_id:
        return jsonify({"error": "Missing user ID"}), 400
    if user_id == u.id:
        return jsonify({"error": "Cannot delete your own account"}), 400

    user = s.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    try:
        snapshot = delete_user(s, user, u)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    return jsonify(snapshot)


@bp.delete("/users")
@require_permission(Permission.ADMIN)
def users_delete_by_query():
    return _delete(clean_str(request.args.get("id")))


@bp.delete("/users/<user_id>")
@require_permission(Permission.ADMIN)
def users_delete(user_id: str):
    return _delete(user_id)


@bp.get("/users/check-email")
def users_check_email():
    """Public: lets the sign-up form tell whether an account already exists."""
    email = clean_str(request.args.get("email"))
    if not email:
        return jsonify({"error": "Email is required"}), 400
    s = db_session()
    return jsonify({"exists": find_by_email(s, email) is not None})


@bp.get("/roles")
@require_login
def roles_list():
    return jsonify(roles_payload())
