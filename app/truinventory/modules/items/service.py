from __future__ import annotations

import secrets
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.truinventory.audit import change, record_event
from app.truinventory.constants import ACTION_CREATE, ACTION_DELETE, ACTION_UPDATE, QR_CODE_PREFIX
from app.truinventory.modules.categories.custom_fields import validate_custom_field_values
from app.truinventory.modules.categories.service import field_to_dict
from app.truinventory.utils import iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.truinventory.models import User
    from app.truinventory.modules.categories.models import Category
    from app.truinventory.modules.items.models import Item
    from app.truinventory.modules.locations.models import Location


KEEP = object()

# Largest value a portable INTEGER column holds.
MAX_QUANTITY = 2**31 - 1


def generate_qr_code(s: "Session") -> str:
    """`ITEM-<epoch ms>-<6 hex>`, unique across items."""
    from app.truinventory.modules.items.models import Item

    while True:
        code = f"{QR_CODE_PREFIX}{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"
        if s.query(Item.id).filter(Item.qr_code == code).first() is None:
            return code


def parse_quantity(value: Any) -> int:
    """Non-negative integer quantity; None/blank means 0."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    qty = parse_int(value)
    if qty is None:
        if isinstance(value, float) and value.is_integer():
            qty = int(value)
        else:
            raise ValueError("Quantity must be a whole number")
    if qty < 0:
        raise ValueError("Quantity cannot be negative")
    if qty > MAX_QUANTITY:
        raise ValueError("Quantity is too large")
    return qty


def _check_custom_fields(category: "Category", values: Any) -> dict[str, Any]:
    normalized, errors = validate_custom_field_values(list(category.custom_fields), values)
    if errors:
        raise ValueError("; ".join(errors))
    return normalized


def item_to_dict(item: "Item") -> dict[str, Any]:
    category = item.category
    location = item.location
    parent = location.parent if location else None
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "quantity": item.quantity,
        "qrCode": item.qr_code,
        "categoryId": item.category_id,
        "locationId": item.location_id,
        "customFields": item.custom_fields or {},
        "createdAt": iso(item.created_at),
        "updatedAt": iso(item.updated_at),
        "category": {
            "id": category.id,
            "name": category.name,
            "customFields": [field_to_dict(f) for f in category.custom_fields],
        }
        if category
        else None,
        "location": {
            "id": location.id,
            "name": location.name,
            "fullPath": location.full_path,
            "parent": {"id": parent.id, "name": parent.name} if parent else None,
        }
        if location
        else None,
    }


def search_items(
    s: "Session",
    *,
    search: str | None = None,
    category_id: str | None = None,
    location_id: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list["Item"], int]:
    """
    Filtered, paginated items (newest update first).
    A location filter covers the location and its whole subtree.
    """
    from app.truinventory.modules.items.models import Item
    from app.truinventory.modules.locations.models import Location
    from app.truinventory.modules.locations.service import subtree_ids

    q = s.query(Item)
    if search:
        q = q.filter(
            or_(
                Item.name.icontains(search, autoescape=True),
                Item.description.icontains(search, autoescape=True),
            )
        )
    if category_id:
        q = q.filter(Item.category_id == category_id)
    if location_id:
        location = s.get(Location, location_id)
        ids = subtree_ids(s, location) if location else []
        q = q.filter(Item.location_id.in_(ids))

    total = q.count()
    items = (
        q.order_by(Item.updated_at.desc(), Item.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def create_item(
    s: "Session",
    *,
    name: str,
    description: str | None,
    quantity: Any,
    category: "Category",
    location: "Location",
    custom_fields: Any,
    user: "User",
) -> "Item":
    from app.truinventory.modules.items.models import Item

    qty = parse_quantity(quantity)
    values = _check_custom_fields(category, custom_fields)

    now = datetime.utcnow()
    item = Item(
        name=name,
        description=description,
        quantity=qty,
        qr_code=generate_qr_code(s),
        category=category,
        location=location,
        custom_fields=values,
        created_at=now,
        updated_at=now,
    )
    s.add(item)
    s.flush()

    record_event(
        s,
        actor=user,
        action=ACTION_CREATE,
        event_type="ITEM_CREATED",
        item_id=item.id,
        details={
            "itemId": item.id,
            "itemName": item.name,
            "quantity": item.quantity,
            "categoryId": category.id,
            "locationId": location.id,
        },
    )
    return item


def update_item(
    s: "Session",
    item: "Item",
    user: "User",
    *,
    name: Any = KEEP,
    description: Any = KEEP,
    quantity: Any = KEEP,
    category: Any = KEEP,
    location: Any = KEEP,
    custom_fields: Any = KEEP,
) -> "Item":
    """
    Partial update. Custom-field values are re-validated against the final
    category whenever the category or the values change.
    """
    before = {
        "name": item.name,
        "description": item.description,
        "quantity": item.quantity,
        "categoryId": item.category_id,
        "locationId": item.location_id,
        "customFields": dict(item.custom_fields or {}),
    }

    final_category = item.category if category is KEEP else category
    if category is not KEEP or custom_fields is not KEEP:
        values = item.custom_fields if custom_fields is KEEP else custom_fields
        item.custom_fields = _check_custom_fields(final_category, values)

    if name is not KEEP:
        item.name = name
    if description is not KEEP:
        item.description = description
    if quantity is not KEEP:
        item.quantity = parse_quantity(quantity)
    if category is not KEEP:
        item.category = category
    if location is not KEEP:
        item.location = location
    item.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action=ACTION_UPDATE,
        event_type="ITEM_UPDATED",
        item_id=item.id,
        details={
            "itemId": item.id,
            "itemName": item.name,
            "changes": {
                "name": change(before["name"], item.name),
                "description": change(before["description"], item.description),
                "quantity": change(before["quantity"], item.quantity),
                "categoryId": change(before["categoryId"], item.category_id),
                "locationId": change(before["locationId"], item.location_id),
                "customFields": change(before["customFields"], dict(item.custom_fields or {})),
            },
        },
    )
    return item


def regenerate_qr_code(s: "Session", item: "Item", user: "User") -> "Item":
    old_code = item.qr_code
    item.qr_code = generate_qr_code(s)
    item.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        actor=user,
        action=ACTION_UPDATE,
        event_type="ITEM_QR_REGENERATED",
        item_id=item.id,
        details={"itemId": item.id, "itemName": item.name, "changes": {"qrCode": change(old_code, item.qr_code)}},
    )
    return item


def delete_item(s: "Session", item: "Item", user: "User") -> dict[str, Any]:
    snapshot = {"id": item.id, "name": item.name}
    s.delete(item)
    s.flush()

    # The row is gone, so the log links to it by details only.
    record_event(
        s,
        actor=user,
        action=ACTION_DELETE,
        event_type="ITEM_DELETED",
        details={"itemId": snapshot["id"], "itemName": snapshot["name"]},
    )
    return snapshot
