from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.truinventory.db import db_session
from app.truinventory.models import User
from app.truinventory.modules.settings.service import get_settings, settings_status, update_settings
from app.truinventory.rbac import Permission, require_permission, user_has_permission
from app.truinventory.utils import json_body

bp = Blueprint("settings", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/settings")
def settings_get():
    """
    Azure AD status. Anonymous callers get it too so the login page can offer
    the provider; signed-in users need ADMIN.
    """
    user = getattr(g, "current_user", None)
    if user is not None and not user_has_permission(user, Permission.ADMIN):
        return jsonify({"error": "Forbidden"}), 403
    s = db_session()
    return jsonify(settings_status(get_settings(s)))


@bp.post("/settings")
@require_permission(Permission.ADMIN)
def settings_update():
    s = db_session()
    u = _current_user()
    data = json_body()

    settings = update_settings(s, data, u)
    s.commit()
    return jsonify({"success": True, **settings_status(settings)})
