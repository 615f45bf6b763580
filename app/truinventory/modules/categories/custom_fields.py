"""
Custom fields: category-defined, dynamically typed item attributes.

Definitions live in the `custom_fields` table; values live on each item in
`Item.custom_fields`, keyed by field id. Validation here runs at write time,
against the definitions of the item's (final) category.
"""
from __future__ import annotations

import math
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from app.truinventory.constants import CUSTOM_FIELD_TYPES

if TYPE_CHECKING:
    from app.truinventory.modules.categories.models import CustomField


_TRUE = frozenset({"true", "1", "yes", "on"})
_FALSE = frozenset({"false", "0", "no", "off"})


def parse_field_definitions(raw: Any) -> tuple[list[dict[str, Any]], list[str]]:
    """
    Normalize a list of field definitions from a request body.

    Returns (definitions, errors). Each definition has keys
    id (str | None), name, type, required, options.
    """
    if raw is None:
        return [], []
    if not isinstance(raw, list):
        return [], ["customFields must be a list"]

    definitions: list[dict[str, Any]] = []
    errors: list[str] = []
    seen_names: set[str] = set()
    seen_ids: set[str] = set()
    for idx, field in enumerate(raw, start=1):
        if not isinstance(field, dict):
            errors.append(f"Custom field #{idx} must be an object")
            continue

        name = str(field.get("name") or "").strip()
        if not name:
            errors.append(f"Custom field #{idx}: name is required")
            continue
        if name.lower() in seen_names:
            errors.append(f"Duplicate custom field name: {name}")
            continue
        seen_names.add(name.lower())

        field_type = str(field.get("type") or "text").strip().lower()
        if field_type not in CUSTOM_FIELD_TYPES:
            errors.append(f"Custom field '{name}': invalid type '{field_type}'. Must be one of: {', '.join(sorted(CUSTOM_FIELD_TYPES))}")
            continue

        options_raw = field.get("options")
        if options_raw is None:
            options: list[str] = []
        elif isinstance(options_raw, list):
            options = [str(o).strip() for o in options_raw if str(o).strip()]
        else:
            errors.append(f"Custom field '{name}': options must be a list")
            continue
        if field_type == "select" and not options:
            errors.append(f"Custom field '{name}': select fields need at least one option")
            continue
        if field_type != "select":
            options = []

        field_id = str(field.get("id") or "").strip() or None
        if field_id:
            if field_id in seen_ids:
                errors.append(f"Duplicate custom field id: {field_id}")
                continue
            seen_ids.add(field_id)

        definitions.append(
            {
                "id": field_id,
                "name": name,
                "type": field_type,
                "required": bool(field.get("required")),
                "options": options,
            }
        )
    return definitions, errors


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, dict)) and not value:
        return True
    return False


def coerce_value(field: "CustomField", value: Any) -> Any:
    """Normalize a single non-blank value for `field`; raises ValueError if it does not fit the type."""
    if field.type == "number":
        if isinstance(value, bool):
            raise ValueError(f"Custom field '{field.name}' must be a number")
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError(f"Custom field '{field.name}' must be a number")
            return value
        text = str(value).strip()
        try:
            number = float(text)
        except ValueError:
            raise ValueError(f"Custom field '{field.name}' must be a number")
        if not math.isfinite(number):
            raise ValueError(f"Custom field '{field.name}' must be a number")
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number

    if field.type == "date":
        text = str(value).strip()
        try:
            # Full ISO datetimes are accepted; only their date part is kept.
            if len(text) > 10:
                return datetime.fromisoformat(text).date().isoformat()
            return date.fromisoformat(text).isoformat()
        except ValueError:
            raise ValueError(f"Custom field '{field.name}' must be a date (YYYY-MM-DD)")

    if field.type == "boolean":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"Custom field '{field.name}' must be true or false")

    if field.type == "select":
        text = str(value).strip()
        if text not in (field.options or []):
            raise ValueError(f"Custom field '{field.name}' must be one of: {', '.join(field.options or [])}")
        return text

    return str(value).strip()


def validate_custom_field_values(
    fields: list["CustomField"],
    values: Any,
) -> tuple[dict[str, Any], list[str]]:
    """
    Check item custom-field values against a category's field definitions.

    Returns (normalized_values, errors). Keys without a matching definition
    are kept as-is so values from earlier categories or legacy imports survive.
    """
    if values is None:
        values = {}
    if not isinstance(values, dict):
        return {}, ["customFields must be an object keyed by field id"]

    normalized: dict[str, Any] = dict(values)
    errors: list[str] = []

    missing = [f.name for f in fields if f.required and is_blank(values.get(f.id))]
    if missing:
        errors.append(f"Missing required custom fields: {', '.join(missing)}")

    for field in fields:
        if field.id not in values:
            continue
        value = values[field.id]
        if is_blank(value):
            normalized[field.id] = None
            continue
        try:
            normalized[field.id] = coerce_value(field, value)
        except ValueError as e:
            errors.append(str(e))

    return normalized, errors
