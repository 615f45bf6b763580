from datetime import datetime, time, timedelta

from flask import Blueprint, g, jsonify, request

from app.truinventory.db import db_session
from app.truinventory.models import AuditLog, User
from app.truinventory.rbac import Permission, require_permission, user_has_permission
from app.truinventory.utils import iso, parse_date, parse_int

bp = Blueprint("admin", __name__)

AUDIT_DEFAULT_LIMIT = 200
AUDIT_MAX_LIMIT = 1000


def audit_log_to_dict(log: AuditLog, user: User | None) -> dict:
    return {
        "id": log.id,
        "action": log.action,
        "userId": log.user_id,
        "itemId": log.item_id,
        "details": log.details,
        "requestId": log.request_id,
        "createdAt": iso(log.created_at),
        "user": {"name": user.name, "email": user.email}
        if user
        else ({"name": None, "email": log.user_email} if log.user_email else None),
    }


@bp.get("/audit-logs")
@require_permission(Permission.READ)
def audit_list():
    """
    Audit trail, newest first, with simple filters:
    - itemId (exact)
    - action (exact, case-insensitive)
    - userEmail (contains)
    - dateFrom / dateTo (YYYY-MM-DD, inclusive)
    Non-admins only see entries tied to an item.
    """
    s = db_session()
    item_id = (request.args.get("itemId") or "").strip()
    action = (request.args.get("action") or "").strip().upper()
    user_email = (request.args.get("userEmail") or "").strip().lower()
    raw_from = (request.args.get("dateFrom") or "").strip()
    raw_to = (request.args.get("dateTo") or "").strip()
    date_from = parse_date(raw_from)
    date_to = parse_date(raw_to)

    if raw_from and not date_from:
        return jsonify({"error": "dateFrom must be YYYY-MM-DD"}), 400
    if raw_to and not date_to:
        return jsonify({"error": "dateTo must be YYYY-MM-DD"}), 400

    limit = parse_int(request.args.get("limit")) or AUDIT_DEFAULT_LIMIT
    limit = min(max(limit, 1), AUDIT_MAX_LIMIT)

    q = s.query(AuditLog, User).outerjoin(User, User.id == AuditLog.user_id)
    if not user_has_permission(g.current_user, Permission.ADMIN):
        q = q.filter(AuditLog.item_id.isnot(None))
    if item_id:
        q = q.filter(AuditLog.item_id == item_id)
    if action:
        q = q.filter(AuditLog.action == action)
    if user_email:
        q = q.filter(AuditLog.user_email.like(f"%{user_email}%"))
    if date_from:
        q = q.filter(AuditLog.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditLog.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    rows = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([audit_log_to_dict(log, user) for log, user in rows])
