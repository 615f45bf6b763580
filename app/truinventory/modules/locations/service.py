"""
Location tree maintenance.

Locations form a tree stored as a materialized path. For a node N with parent P:

    N.path      = P.path + P.id + "/"      ("/" for roots)
    N.level     = P.level + 1              (0 for roots)
    N.full_path = P.full_path + "/" + N.name   ("/" + N.name for roots)

Every descendant of N has a `path` starting with `N.path + N.id + "/"`, which is
what subtree queries use. Renames and moves rewrite the node and then reapply
the same formula to all descendants.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.truinventory.audit import change, record_event
from app.truinventory.constants import ACTION_CREATE, ACTION_DELETE, ACTION_UPDATE
from app.truinventory.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.truinventory.models import User
    from app.truinventory.modules.locations.models import Location


KEEP = object()  # sentinel: leave the attribute unchanged

PATH_CONFLICT = "A location with this path already exists"
DESCENDANT_MOVE = "Cannot move a location to its own descendant"
HAS_ITEMS = "Cannot delete location with items. Please reassign all items first."


def compute_path_fields(name: str, parent: "Location | None") -> tuple[str, str, int]:
    """(path, full_path, level) for a node named `name` under `parent`."""
    if parent is None:
        return "/", f"/{name}", 0
    return f"{parent.path}{parent.id}/", f"{parent.full_path}/{name}", parent.level + 1


def validate_location_name(name: Any) -> list[str]:
    errors = []
    value = (str(name) if name is not None else "").strip()
    if not value:
        errors.append("Name is required")
    elif "/" in value:
        errors.append("Name cannot contain '/'")
    elif len(value) > 255:
        errors.append("Name must be at most 255 characters")
    return errors


def ancestor_ids(location: "Location") -> list[str]:
    """Ids of the ancestors of `location`, root first."""
    return [part for part in location.path.split("/") if part]


def get_ancestors(s: "Session", location: "Location") -> list["Location"]:
    from app.truinventory.modules.locations.models import Location

    ids = ancestor_ids(location)
    if not ids:
        return []
    return s.query(Location).filter(Location.id.in_(ids)).order_by(Location.level.asc()).all()


def subtree_ids(s: "Session", location: "Location") -> list[str]:
    """Ids of `location` and all of its descendants."""
    from app.truinventory.modules.locations.models import Location

    rows = (
        s.query(Location.id)
        .filter(Location.path.startswith(location.subtree_path_prefix, autoescape=True))
        .all()
    )
    return [location.id] + [r[0] for r in rows]


def is_descendant_or_self(s: "Session", node: "Location", candidate: "Location") -> bool:
    """
    True when `candidate` is `node` or sits below it.
    Walks the candidate's parent chain so it does not depend on stored paths.
    """
    from app.truinventory.modules.locations.models import Location

    if candidate.id == node.id:
        return True
    seen: set[str] = set()
    current = candidate
    while current.parent_id:
        if current.parent_id == node.id:
            return True
        if current.parent_id in seen:
            # Corrupt data: a cycle that does not include `node`.
            break
        seen.add(current.parent_id)
        current = s.get(Location, current.parent_id)
        if current is None:
            break
    return False


def ensure_full_path_available(s: "Session", full_path: str, exclude_id: str | None = None) -> None:
    from app.truinventory.modules.locations.models import Location

    q = s.query(Location.id).filter(Location.full_path == full_path)
    if exclude_id:
        q = q.filter(Location.id != exclude_id)
    if q.first() is not None:
        raise ValueError(PATH_CONFLICT)


def update_descendant_paths(s: "Session", parent: "Location", now: datetime | None = None) -> int:
    """Reapply the path formula to every descendant of `parent`. Returns the number of rows touched."""
    from app.truinventory.modules.locations.models import Location

    now = now or datetime.utcnow()
    touched = 0
    children = s.query(Location).filter(Location.parent_id == parent.id).order_by(Location.name.asc()).all()
    for child in children:
        child.path, child.full_path, child.level = compute_path_fields(child.name, parent)
        child.updated_at = now
        touched += 1 + update_descendant_paths(s, child, now)
    return touched


def create_location(
    s: "Session",
    *,
    name: str,
    description: str | None,
    parent: "Location | None",
    user: "User",
) -> "Location":
    from app.truinventory.modules.locations.models import Location

    errors = validate_location_name(name)
    if errors:
        raise ValueError(errors[0])
    name = str(name).strip()

    path, full_path, level = compute_path_fields(name, parent)
    ensure_full_path_available(s, full_path)

    now = datetime.utcnow()
    location = Location(
        name=name,
        description=description,
        parent_id=parent.id if parent else None,
        path=path,
        full_path=full_path,
        level=level,
        created_at=now,
        updated_at=now,
    )
    s.add(location)
    s.flush()

    record_event(
        s,
        actor=user,
        action=ACTION_CREATE,
        event_type="LOCATION_CREATED",
        details={
            "locationId": location.id,
            "locationName": location.name,
            "parentId": location.parent_id,
        },
    )
    return location


def update_location(
    s: "Session",
    location: "Location",
    user: "User",
    *,
    name: Any = KEEP,
    description: Any = KEEP,
    parent: Any = KEEP,
) -> "Location":
    """
    Rename and/or move `location`.

    `parent` is KEEP (stay put), None (move to root) or a Location.
    Raises ValueError on invalid names, cycles and path conflicts.
    """
    old_name = location.name
    old_description = location.description
    old_parent_id = location.parent_id

    new_name = old_name
    if name is not KEEP:
        errors = validate_location_name(name)
        if errors:
            raise ValueError(errors[0])
        new_name = str(name).strip()

    new_parent = location.parent if parent is KEEP else parent
    if new_parent is not None and parent is not KEEP and new_parent.id != old_parent_id:
        if is_descendant_or_self(s, location, new_parent):
            raise ValueError(DESCENDANT_MOVE)

    path, full_path, level = compute_path_fields(new_name, new_parent)
    if full_path != location.full_path:
        ensure_full_path_available(s, full_path, exclude_id=location.id)

    now = datetime.utcnow()
    location.name = new_name
    if description is not KEEP:
        location.description = description
    location.parent = new_parent
    location.path = path
    location.full_path = full_path
    location.level = level
    location.updated_at = now
    s.flush()

    descendants = update_descendant_paths(s, location, now)

    record_event(
        s,
        actor=user,
        action=ACTION_UPDATE,
        event_type="LOCATION_UPDATED",
        details={
            "locationId": location.id,
            "locationName": location.name,
            "descendantsUpdated": descendants,
            "changes": {
                "name": change(old_name, location.name),
                "description": change(old_description, location.description),
                "parentId": change(old_parent_id, location.parent_id),
            },
        },
    )
    return location


def location_has_items(s: "Session", location: "Location") -> bool:
    """True when the location or any descendant holds items."""
    from app.truinventory.modules.items.models import Item

    ids = subtree_ids(s, location)
    return s.query(Item.id).filter(Item.location_id.in_(ids)).first() is not None


def delete_location(s: "Session", location: "Location", user: "User") -> int:
    """Delete `location` and its subtree. Returns the number of locations removed."""
    if location_has_items(s, location):
        raise ValueError(HAS_ITEMS)

    removed = len(subtree_ids(s, location))
    location_id = location.id
    location_name = location.name
    s.delete(location)
    s.flush()

    record_event(
        s,
        actor=user,
        action=ACTION_DELETE,
        event_type="LOCATION_DELETED",
        details={
            "locationId": location_id,
            "locationName": location_name,
            "locationsRemoved": removed,
        },
    )
    return removed


def location_to_dict(location: "Location") -> dict[str, Any]:
    return {
        "id": location.id,
        "name": location.name,
        "description": location.description,
        "parentId": location.parent_id,
        "path": location.path,
        "fullPath": location.full_path,
        "level": location.level,
        "createdAt": iso(location.created_at),
        "updatedAt": iso(location.updated_at),
    }


def build_tree(locations: list["Location"]) -> list[dict[str, Any]]:
    """
    Nest a flat list into root nodes with `children`.
    Input order (level, then name) is preserved among siblings.
    """
    nodes: dict[str, dict[str, Any]] = {}
    for loc in locations:
        node = location_to_dict(loc)
        node["children"] = []
        nodes[loc.id] = node

    roots: list[dict[str, Any]] = []
    for loc in locations:
        node = nodes[loc.id]
        if loc.parent_id:
            parent = nodes.get(loc.parent_id)
            if parent is not None:
                parent["children"].append(node)
        else:
            roots.append(node)
    return roots
