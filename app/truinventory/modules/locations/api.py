from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.truinventory.db import db_session
from app.truinventory.models import User
from app.truinventory.modules.items.models import Item
from app.truinventory.modules.locations.models import Location
from app.truinventory.modules.locations.service import (
    KEEP,
    PATH_CONFLICT,
    build_tree,
    create_location,
    delete_location,
    get_ancestors,
    location_to_dict,
    subtree_ids,
    update_location,
)
from app.truinventory.rbac import Permission, require_permission
from app.truinventory.utils import clean_str, json_body

bp = Blueprint("locations", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/locations")
@require_permission(Permission.READ)
def locations_list():
    """Location forest; `?flat=1` returns the ordered flat list instead."""
    s = db_session()
    locations = s.query(Location).order_by(Location.level.asc(), Location.name.asc()).all()
    if (request.args.get("flat") or "").strip().lower() in ("1", "true", "yes"):
        return jsonify([location_to_dict(loc) for loc in locations])
    return jsonify(build_tree(locations))


@bp.get("/locations/<location_id>")
@require_permission(Permission.READ)
def locations_detail(location_id: str):
    s = db_session()
    location = s.get(Location, location_id)
    if not location:
        return jsonify({"error": "Location not found"}), 404

    children = s.query(Location).filter(Location.parent_id == location.id).order_by(Location.name.asc()).all()
    direct_items = s.query(func.count(Item.id)).filter(Item.location_id == location.id).scalar() or 0
    subtree_items = s.query(func.count(Item.id)).filter(Item.location_id.in_(subtree_ids(s, location))).scalar() or 0

    payload = location_to_dict(location)
    payload["ancestors"] = [{"id": a.id, "name": a.name, "fullPath": a.full_path} for a in get_ancestors(s, location)]
    payload["children"] = [location_to_dict(c) for c in children]
    payload["itemCount"] = int(direct_items)
    payload["subtreeItemCount"] = int(subtree_items)
    return jsonify(payload)


@bp.post("/locations")
@require_permission(Permission.EDIT)
def locations_create():
    s = db_session()
    u = _current_user()
    data = json_body()

    name = clean_str(data.get("name"))
    if not name:
        return jsonify({"error": "Name is required"}), 400

    parent = None
    parent_id = clean_str(data.get("parentId"))
    if parent_id:
        parent = s.get(Location, parent_id)
        if not parent:
            return jsonify({"error": "Parent location not found"}), 404

    try:
        location = create_location(
            s,
            name=name,
            description=clean_str(data.get("description")),
            parent=parent,
            user=u,
        )
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    except IntegrityError:
        s.rollback()
        current_app.logger.warning("Location create hit unique constraint (name=%s parent=%s)", name, parent_id)
        return jsonify({"error": PATH_CONFLICT}), 400

    return jsonify(location_to_dict(location)), 201


@bp.route("/locations/<location_id>", methods=["PUT", "PATCH"])
@require_permission(Permission.EDIT)
def locations_update(location_id: str):
    s = db_session()
    u = _current_user()
    data = json_body()

    location = s.get(Location, location_id)
    if not location:
        return jsonify({"error": "Location not found"}), 404

    # "parentId": null moves the location to the root; omitting the key keeps the parent.
    parent = KEEP
    if "parentId" in data:
        parent_id = clean_str(data.get("parentId"))
        if parent_id is None:
            parent = None
        elif parent_id == location.parent_id:
            parent = KEEP
        else:
            parent = s.get(Location, parent_id)
            if not parent:
                return jsonify({"error": "Parent location not found"}), 404

    name = KEEP
    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            return jsonify({"error": "Name is required"}), 400

    description = KEEP
    if "description" in data:
        description = clean_str(data.get("description"))

    try:
        location = update_location(s, location, u, name=name, description=description, parent=parent)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    except IntegrityError:
        s.rollback()
        current_app.logger.warning("Location update hit unique constraint (location_id=%s)", location_id)
        return jsonify({"error": PATH_CONFLICT}), 400

    return jsonify(location_to_dict(location))


@bp.delete("/locations/<location_id>")
@require_permission(Permission.EDIT)
def locations_delete(location_id: str):
    s = db_session()
    u = _current_user()

    location = s.get(Location, location_id)
    if not location:
        return jsonify({"error": "Location not found"}), 404

    try:
        removed = delete_location(s, location, u)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400

    return jsonify({"success": True, "removed": removed})
