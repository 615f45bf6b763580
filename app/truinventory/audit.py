import json
from datetime import datetime
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.truinventory.models import AuditLog, User


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    event_type: str | None = None,
    item_id: str | None = None,
    details: dict[str, Any] | None = None,
    actor_email: str | None = None,
    request_id: str | None = None,
) -> AuditLog:
    """
    Append-only audit log helper.

    `event_type` lands in details["type"]; a UTC timestamp is always added.
    Change maps with `None` entries (unchanged fields) are dropped.
    """
    payload: dict[str, Any] = {}
    if event_type:
        payload["type"] = event_type
    for key, value in (details or {}).items():
        if key == "changes" and isinstance(value, dict):
            value = {k: v for k, v in value.items() if v is not None}
        payload[key] = value
    payload["timestamp"] = datetime.utcnow().isoformat() + "Z"

    rid = request_id
    client_ip = None
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        client_ip = request.remote_addr

    entry = AuditLog(
        request_id=rid,
        client_ip=client_ip,
        action=action,
        user_id=actor.id if actor else None,
        user_email=actor.email if actor else actor_email,
        item_id=item_id,
        details_json=json.dumps(payload, sort_keys=True, default=_json_default),
    )
    s.add(entry)
    return entry


def change(old: Any, new: Any) -> dict[str, Any] | None:
    """`{"from": old, "to": new}` when the value changed, else None."""
    if old == new:
        return None
    return {"from": old, "to": new}
