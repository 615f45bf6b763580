from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from app.truinventory.db import db_session
from app.truinventory.modules.dashboard.service import dashboard_stats
from app.truinventory.rbac import Permission, require_permission

bp = Blueprint("dashboard", __name__)


@bp.get("/dashboard")
@require_permission(Permission.READ)
def dashboard():
    s = db_session()
    return jsonify(dashboard_stats(s, current_app.config.get("LOW_STOCK_THRESHOLD", 5)))
