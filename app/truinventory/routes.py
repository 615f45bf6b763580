from flask import Blueprint, current_app
from sqlalchemy import text

from app.truinventory.db import db_session

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint with a trivial DB round-trip. Returns JSON."""
    try:
        db_session().execute(text("SELECT 1"))
    except Exception as e:
        current_app.logger.error("Health check DB error: %s", e)
        return {"ok": False, "error": "database unavailable"}, 503
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200
