from __future__ import annotations

from datetime import date, datetime
from typing import Any

from flask import abort, request


def json_body() -> dict[str, Any]:
    """Request JSON object; 400 when the body is missing or not an object."""
    data = request.get_json(silent=True)
    if data is None:
        abort(400, description="Request body must be JSON.")
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object.")
    return data


def clean_str(value: Any) -> str | None:
    """Stripped string, or None for missing/blank values."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    v = str(value).strip()
    if not v:
        return None
    try:
        return int(v)
    except ValueError:
        return None


def parse_date(s: str | None) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def page_params(default_limit: int, max_limit: int) -> tuple[int, int]:
    """(page, limit) from the query string; page >= 1, 1 <= limit <= max_limit."""
    page = parse_int(request.args.get("page")) or 1
    limit = parse_int(request.args.get("limit")) or default_limit
    page = max(page, 1)
    limit = min(max(limit, 1), max_limit)
    return page, limit
