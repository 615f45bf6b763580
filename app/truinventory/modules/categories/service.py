from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.truinventory.audit import change, record_event
from app.truinventory.constants import ACTION_CREATE, ACTION_DELETE, ACTION_UPDATE, LEGACY_CUSTOM_FIELD_NAMES
from app.truinventory.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.truinventory.models import User
    from app.truinventory.modules.categories.models import Category, CustomField


KEEP = object()

NAME_TAKEN = "Category already exists"
HAS_ITEMS = "Cannot delete category with items. Please reassign or delete its items first."


def field_to_dict(field: "CustomField") -> dict[str, Any]:
    return {
        "id": field.id,
        "categoryId": field.category_id,
        "name": field.name,
        "type": field.type,
        "required": field.required,
        "options": list(field.options or []),
        "createdAt": iso(field.created_at),
    }


def category_to_dict(category: "Category", item_count: int | None = None) -> dict[str, Any]:
    payload = {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "createdAt": iso(category.created_at),
        "updatedAt": iso(category.updated_at),
        "customFields": [field_to_dict(f) for f in category.custom_fields],
    }
    if item_count is not None:
        payload["_count"] = {"items": item_count}
    return payload


def item_counts_by_category(s: "Session") -> dict[str, int]:
    from app.truinventory.modules.items.models import Item

    rows = s.query(Item.category_id, func.count(Item.id)).group_by(Item.category_id).all()
    return {category_id: int(cnt) for category_id, cnt in rows}


def category_item_count(s: "Session", category: "Category") -> int:
    from app.truinventory.modules.items.models import Item

    return int(s.query(func.count(Item.id)).filter(Item.category_id == category.id).scalar() or 0)


def _ensure_name_available(s: "Session", name: str, exclude_id: str | None = None) -> None:
    from app.truinventory.modules.categories.models import Category

    q = s.query(Category.id).filter(Category.name == name)
    if exclude_id:
        q = q.filter(Category.id != exclude_id)
    if q.first() is not None:
        raise ValueError(NAME_TAKEN)


def sync_custom_fields(
    s: "Session",
    category: "Category",
    definitions: list[dict[str, Any]],
) -> dict[str, list[str]]:
    """
    Make `category.custom_fields` match `definitions`.

    Definitions with an id update that field, definitions without one create a
    new field, and existing fields absent from the list are deleted.
    """
    from app.truinventory.modules.categories.models import CustomField

    existing = {f.id: f for f in category.custom_fields}
    keep_ids = {d["id"] for d in definitions if d.get("id")}
    unknown = keep_ids - set(existing)
    if unknown:
        raise ValueError(f"Custom field does not belong to this category: {', '.join(sorted(unknown))}")

    summary: dict[str, list[str]] = {"created": [], "updated": [], "deleted": []}
    now = datetime.utcnow()

    for field_id, field in list(existing.items()):
        if field_id not in keep_ids:
            summary["deleted"].append(field.name)
            category.custom_fields.remove(field)

    for idx, definition in enumerate(definitions):
        if definition.get("id"):
            field = existing[definition["id"]]
            field.name = definition["name"]
            field.type = definition["type"]
            field.required = definition["required"]
            field.options = definition["options"]
            summary["updated"].append(field.name)
        else:
            category.custom_fields.append(
                CustomField(
                    name=definition["name"],
                    type=definition["type"],
                    required=definition["required"],
                    options=definition["options"],
                    # distinct timestamps keep the submitted order
                    created_at=now + timedelta(microseconds=idx),
                )
            )
            summary["created"].append(definition["name"])

    s.flush()
    return summary


def create_category(
    s: "Session",
    *,
    name: str,
    description: str | None,
    definitions: list[dict[str, Any]],
    user: "User",
) -> "Category":
    from app.truinventory.modules.categories.models import Category

    _ensure_name_available(s, name)

    now = datetime.utcnow()
    category = Category(name=name, description=description, created_at=now, updated_at=now)
    s.add(category)
    s.flush()
    sync_custom_fields(s, category, [dict(d, id=None) for d in definitions])

    record_event(
        s,
        actor=user,
        action=ACTION_CREATE,
        event_type="CATEGORY_CREATED",
        details={
            "categoryId": category.id,
            "categoryName": category.name,
            "customFields": [f.name for f in category.custom_fields],
        },
    )
    return category


def update_category(
    s: "Session",
    category: "Category",
    user: "User",
    *,
    name: Any = KEEP,
    description: Any = KEEP,
    definitions: list[dict[str, Any]] | None = None,
) -> "Category":
    old_name = category.name
    old_description = category.description

    if name is not KEEP and name != category.name:
        _ensure_name_available(s, name, exclude_id=category.id)
        category.name = name
    if description is not KEEP:
        category.description = description

    fields_summary = None
    if definitions is not None:
        fields_summary = sync_custom_fields(s, category, definitions)

    category.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action=ACTION_UPDATE,
        event_type="CATEGORY_UPDATED",
        details={
            "categoryId": category.id,
            "categoryName": category.name,
            "changes": {
                "name": change(old_name, category.name),
                "description": change(old_description, category.description),
            },
            "customFields": fields_summary,
        },
    )
    return category


def replace_custom_fields(
    s: "Session",
    category: "Category",
    definitions: list[dict[str, Any]],
    user: "User",
) -> list["CustomField"]:
    summary = sync_custom_fields(s, category, definitions)
    category.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action=ACTION_UPDATE,
        event_type="CATEGORY_CUSTOM_FIELDS_UPDATED",
        details={"categoryId": category.id, "categoryName": category.name, "customFields": summary},
    )
    return list(category.custom_fields)


def delete_category(s: "Session", category: "Category", user: "User") -> None:
    """Delete a category and its field definitions; refused while items still use it."""
    if category_item_count(s, category) > 0:
        raise ValueError(HAS_ITEMS)

    category_id = category.id
    category_name = category.name
    s.delete(category)
    s.flush()

    record_event(
        s,
        actor=user,
        action=ACTION_DELETE,
        event_type="CATEGORY_DELETED",
        details={"categoryId": category_id, "categoryName": category_name},
    )


def custom_field_mapping(s: "Session") -> dict[str, dict[str, str]]:
    """Field id -> {name, categoryName}; legacy `cf_XX` ids fill in where no real field uses them."""
    from app.truinventory.modules.categories.models import Category, CustomField

    rows = (
        s.query(CustomField.id, CustomField.name, Category.name)
        .join(Category, Category.id == CustomField.category_id)
        .all()
    )
    mapping = {field_id: {"name": name, "categoryName": category_name} for field_id, name, category_name in rows}
    for legacy_id, legacy_name in LEGACY_CUSTOM_FIELD_NAMES.items():
        mapping.setdefault(legacy_id, {"name": legacy_name, "categoryName": "Legacy"})
    return mapping
