from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy import func
from werkzeug.security import check_password_hash

from app.truinventory.audit import record_event
from app.truinventory.constants import ACTION_LOGIN, ACTION_LOGIN_FAILED, ACTION_LOGOUT, ROLE_ADMIN
from app.truinventory.db import db_session
from app.truinventory.models import User
from app.truinventory.rbac import permissions_for_role, require_login, role_name
from app.truinventory.security import ensure_csrf_token
from app.truinventory.utils import clean_str, json_body

bp = Blueprint("auth", __name__)
setup_bp = Blueprint("setup", __name__)

_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _login_attempts() -> dict[str, list[datetime]]:
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    cutoff = datetime.utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, str(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


def session_payload(user: User) -> dict:
    return {
        "user": {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role,
            "roleName": role_name(user.role),
        },
        "permissions": [p.value for p in permissions_for_role(user.role)],
        "csrfToken": ensure_csrf_token(),
    }


@bp.post("/login")
def login():
    data = json_body()
    email = (clean_str(data.get("email")) or "").lower()
    password = data.get("password") if isinstance(data.get("password"), str) else ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        current_app.logger.warning("Login rate limit hit (ip=%s email=%s)", ip, email)
        return jsonify({"error": "Too many login attempts. Please wait 5 minutes."}), 429

    _record_attempt(ip)

    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    try:
        s = db_session()
        user = s.query(User).filter(func.lower(User.email) == email).one_or_none()
        if (
            not user
            or not user.is_active
            or not user.password_hash
            or not check_password_hash(user.password_hash, password)
        ):
            record_event(
                s,
                actor=None,
                actor_email=email,
                action=ACTION_LOGIN_FAILED,
                details={"method": "credentials", "email": email, "reason": "Invalid credentials"},
            )
            s.commit()
            return jsonify({"error": "Invalid credentials"}), 401

        session.clear()
        session["user_id"] = user.id
        session.permanent = True
        _login_attempts()[ip].clear()
        g.current_user = user
        record_event(s, actor=user, action=ACTION_LOGIN, details={"method": "credentials", "email": user.email})
        s.commit()
        return jsonify(session_payload(user))
    except Exception:
        current_app.logger.exception("Login crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action=ACTION_LOGOUT, details={"email": user.email})
        s.commit()
    session.clear()
    return jsonify({"success": True})


@bp.get("/session")
@require_login
def current_session():
    return jsonify(session_payload(g.current_user))


@bp.get("/providers")
def providers():
    """Sign-in providers the login page should offer. Azure AD appears once its settings are complete."""
    from app.truinventory.modules.settings.service import load_azure_config

    s = db_session()
    result = [{"id": "credentials", "name": "Email and password"}]
    if load_azure_config(s) is not None:
        result.append({"id": "azure-ad", "name": "Microsoft"})
    return jsonify(result)


@setup_bp.get("/setup")
def setup_status():
    s = db_session()
    count = s.query(func.count(User.id)).scalar() or 0
    return jsonify({"setupRequired": count == 0})


@setup_bp.post("/setup")
def setup_create_admin():
    """First-run: create the initial administrator. Closed once any user exists."""
    from app.truinventory.modules.users.service import create_user, user_to_dict

    s = db_session()
    if (s.query(func.count(User.id)).scalar() or 0) > 0:
        return jsonify({"error": "Setup has already been completed"}), 400

    data = json_body()
    email = clean_str(data.get("email"))
    password = data.get("password")
    name = clean_str(data.get("name"))
    if not email or not password or not name:
        return jsonify({"error": "Missing required fields"}), 400

    try:
        user = create_user(s, email=email, password=password, name=name, role=ROLE_ADMIN, actor=None)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("Initial admin account created (email=%s)", user.email)
    return jsonify({"user": user_to_dict(user)}), 201
