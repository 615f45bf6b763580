from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError

from app.truinventory.db import db_session
from app.truinventory.models import User
from app.truinventory.modules.categories.custom_fields import parse_field_definitions
from app.truinventory.modules.categories.models import Category, CustomField
from app.truinventory.modules.categories.service import (
    KEEP,
    NAME_TAKEN,
    category_item_count,
    category_to_dict,
    create_category,
    custom_field_mapping,
    delete_category,
    field_to_dict,
    item_counts_by_category,
    replace_custom_fields,
    update_category,
)
from app.truinventory.rbac import Permission, require_permission
from app.truinventory.utils import clean_str, json_body

bp = Blueprint("categories", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _errors_response(errors: list[str]):
    return jsonify({"error": errors[0], "errors": errors}), 400


@bp.get("/categories")
@require_permission(Permission.READ)
def categories_list():
    s = db_session()
    counts = item_counts_by_category(s)
    categories = s.query(Category).order_by(Category.name.asc()).all()
    return jsonify([category_to_dict(c, item_count=counts.get(c.id, 0)) for c in categories])


@bp.get("/categories/<category_id>")
@require_permission(Permission.READ)
def categories_detail(category_id: str):
    s = db_session()
    category = s.get(Category, category_id)
    if not category:
        return jsonify({"error": "Category not found"}), 404
    return jsonify(category_to_dict(category, item_count=category_item_count(s, category)))


@bp.post("/categories")
@require_permission(Permission.EDIT)
def categories_create():
    s = db_session()
    u = _current_user()
    data = json_body()

    name = clean_str(data.get("name"))
    if not name:
        return jsonify({"error": "Name is required"}), 400

    definitions, errors = parse_field_definitions(data.get("customFields"))
    if errors:
        return _errors_response(errors)

    try:
        category = create_category(
            s,
            name=name,
            description=clean_str(data.get("description")),
            definitions=definitions,
            user=u,
        )
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    except IntegrityError:
        s.rollback()
        current_app.logger.warning("Category create hit unique constraint (name=%s)", name)
        return jsonify({"error": NAME_TAKEN}), 400

    return jsonify(category_to_dict(category, item_count=0)), 201


@bp.route("/categories/<category_id>", methods=["PUT", "PATCH"])
@require_permission(Permission.EDIT)
def categories_update(category_id: str):
    s = db_session()
    u = _current_user()
    data = json_body()

    category = s.get(Category, category_id)
    if not category:
        return jsonify({"error": "Category not found"}), 404

    name = KEEP
    if "name" in data:
        name = clean_str(data.get("name"))
        if not name:
            return jsonify({"error": "Name is required"}), 400

    description = KEEP
    if "description" in data:
        description = clean_str(data.get("description"))

    definitions = None
    if "customFields" in data:
        definitions, errors = parse_field_definitions(data.get("customFields"))
        if errors:
            return _errors_response(errors)

    try:
        category = update_category(s, category, u, name=name, description=description, definitions=definitions)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    except IntegrityError:
        s.rollback()
        current_app.logger.warning("Category update hit unique constraint (category_id=%s)", category_id)
        return jsonify({"error": NAME_TAKEN}), 400

    return jsonify(category_to_dict(category, item_count=category_item_count(s, category)))


@bp.delete("/categories/<category_id>")
@require_permission(Permission.EDIT)
def categories_delete(category_id: str):
    s = db_session()
    u = _current_user()

    category = s.get(Category, category_id)
    if not category:
        return jsonify({"error": "Category not found"}), 404

    try:
        delete_category(s, category, u)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400

    return jsonify({"success": True})


@bp.get("/categories/<category_id>/custom-fields")
@require_permission(Permission.READ)
def custom_fields_list(category_id: str):
    s = db_session()
    if not s.get(Category, category_id):
        return jsonify({"error": "Category not found"}), 404
    fields = (
        s.query(CustomField)
        .filter(CustomField.category_id == category_id)
        .order_by(CustomField.created_at.asc())
        .all()
    )
    return jsonify([field_to_dict(f) for f in fields])


@bp.put("/categories/<category_id>/custom-fields")
@require_permission(Permission.EDIT)
def custom_fields_replace(category_id: str):
    s = db_session()
    u = _current_user()

    category = s.get(Category, category_id)
    if not category:
        return jsonify({"error": "Category not found"}), 404

    # Accepts the bare list or {"customFields": [...]}
    raw = request.get_json(silent=True)
    if isinstance(raw, dict):
        raw = raw.get("customFields")
    if raw is None:
        return jsonify({"error": "Request body must be a JSON list of custom fields"}), 400
    definitions, errors = parse_field_definitions(raw)
    if errors:
        return _errors_response(errors)

    try:
        fields = replace_custom_fields(s, category, definitions, u)
        s.commit()
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400

    return jsonify([field_to_dict(f) for f in fields])


@bp.get("/custom-fields/mapping")
@require_permission(Permission.READ)
def custom_fields_mapping():
    s = db_session()
    return jsonify(custom_field_mapping(s))
