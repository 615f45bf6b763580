from __future__ import annotations

import math

from flask import Blueprint, Response, current_app, g, jsonify, request

from app.truinventory.db import db_session
from app.truinventory.models import User
from app.truinventory.modules.categories.models import Category
from app.truinventory.modules.items.models import Item
from app.truinventory.modules.items.qr import QR_FORMATS, build_label_png, build_qr_png, qr_payload
from app.truinventory.modules.items.service import (
    create_item,
    delete_item,
    item_to_dict,
    regenerate_qr_code,
    search_items,
    update_item,
)
from app.truinventory.modules.locations.models import Location
from app.truinventory.rbac import Permission, require_permission
from app.truinventory.utils import clean_str, json_body, page_params

bp = Blueprint("items", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _not_found():
    return jsonify({"error": "Item not found"}), 404


@bp.get("/items")
@require_permission(Permission.READ)
def items_list():
    s = db_session()
    page, limit = page_params(
        current_app.config.get("ITEMS_PAGE_SIZE", 10),
        current_app.config.get("ITEMS_MAX_PAGE_SIZE", 100),
    )
    items, total = search_items(
        s,
        search=clean_str(request.args.get("search")),
        category_id=clean_str(request.args.get("categoryId")),
        location_id=clean_str(request.args.get("locationId")),
        page=page,
        limit=limit,
    )
    return jsonify(
        {
            "items": [item_to_dict(i) for i in items],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": math.ceil(total / limit) if total else 0,
            },
        }
    )


@bp.get("/items/<item_id>")
@require_permission(Permission.READ)
def items_detail(item_id: str):
    s = db_session()
    item = s.get(Item, item_id)
    if not item:
        return _not_found()
    return jsonify(item_to_dict(item))


@bp.get("/items/by-qr/<path:code>")
@require_permission(Permission.READ)
def items_by_qr(code: str):
    s = db_session()
    item = s.query(Item).filter(Item.qr_code == code.strip()).one_or_none()
    if not item:
        return _not_found()
    return jsonify(item_to_dict(item))


@bp.post("/items")
@require_permission(Permission.EDIT)
def items_create():
    s = db_session()
    u = _current_user()
    data = json_body()

    name = clean_str(data.get("name"))
    category_id = clean_str(data.get("categoryId"))
    location_id = clean_str(data.get("locationId"))
    if not name or not category_id or not location_id:
        return jsonify({"error": "Missing required fields"}), 400

    category = s.get(Category, category_id)
    if not category:
        return jsonify({"error": "Category not found"}), 404
    location = s.get(Location, location_id)
    if not location:
        return jsonify({"error": "Location not found"}), 404

    try:
        item = create_item(
            s,
            name=name,
            description=clean_str(data.get("description")),
            quantity=data.get("quantity"),
            category=category,
            location=location,
            custom_fields=data.get("customFields"),
            user=u,
        )
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400

    return jsonify(item_to_dict(item)), 201


@bp.route("/items/<item_id>", methods=["PUT", "PATCH"])
@require_permission(Permission.EDIT)
def items_update(item_id: str):
    s = db_session()
    u = _current_user()
    data = json_body()

    item = s.get(Item, item_id)
    if not item:
        return _not_found()

    # Only keys present in the body are passed on; the rest keep their current value.
    changes: dict = {}
    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            return jsonify({"error": "Name is required"}), 400
        changes["name"] = name
    if "description" in data:
        changes["description"] = clean_str(data.get("description"))
    if "quantity" in data:
        changes["quantity"] = data.get("quantity")
    if "customFields" in data:
        changes["custom_fields"] = data.get("customFields")

    category_id = clean_str(data.get("categoryId")) if "categoryId" in data else None
    location_id = clean_str(data.get("locationId")) if "locationId" in data else None
    if ("categoryId" in data and not category_id) or ("locationId" in data and not location_id):
        return jsonify({"error": "Missing required fields"}), 400

    if category_id and category_id != item.category_id:
        category = s.get(Category, category_id)
        if not category:
            return jsonify({"error": "Category not found"}), 404
        changes["category"] = category

    if location_id and location_id != item.location_id:
        location = s.get(Location, location_id)
        if not location:
            return jsonify({"error": "Location not found"}), 404
        changes["location"] = location

    try:
        item = update_item(s, item, u, **changes)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400

    return jsonify(item_to_dict(item))


def _delete(item_id: str | None):
    s = db_session()
    u = _current_user()
    if not item_id:
        return jsonify({"error": "Item ID is required"}), 400

    item = s.get(Item, item_id)
    if not item:
        return _not_found()

    delete_item(s, item, u)
    s.commit()
    return jsonify({"success": True})


@bp.delete("/items/<item_id>")
@require_permission(Permission.EDIT)
def items_delete(item_id: str):
    return _delete(item_id)


@bp.delete("/items")
@require_permission(Permission.EDIT)
def items_delete_by_query():
    return _delete(clean_str(request.args.get("id")))


@bp.get("/items/<item_id>/qr.png")
@require_permission(Permission.READ)
def items_qr_png(item_id: str):
    s = db_session()
    item = s.get(Item, item_id)
    if not item:
        return _not_found()

    fmt = (request.args.get("format") or "normal").strip().lower()
    if fmt not in QR_FORMATS:
        return jsonify({"error": f"format must be one of: {', '.join(QR_FORMATS)}"}), 400

    data = qr_payload(item, current_app.config.get("QR_BASE_URL") or "")
    png = build_label_png(data, item.name) if fmt == "label" else build_qr_png(data)

    resp = Response(png, mimetype="image/png")
    if request.args.get("download") in ("1", "true"):
        resp.headers["Content-Disposition"] = f'attachment; filename="{item.qr_code}.png"'
    resp.headers["Cache-Control"] = "no-store"
    return resp


@bp.post("/items/<item_id>/qr/regenerate")
@require_permission(Permission.EDIT)
def items_qr_regenerate(item_id: str):
    s = db_session()
    u = _current_user()
    item = s.get(Item, item_id)
    if not item:
        return _not_found()

    item = regenerate_qr_code(s, item, u)
    s.commit()
    return jsonify(item_to_dict(item))
