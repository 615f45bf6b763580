from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.orm import aliased

from app.truinventory.models import Category, Item, Location

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


TOP_N = 5


def dashboard_stats(s: "Session", low_stock_threshold: int = 5) -> dict[str, Any]:
    """Headline counts plus the busiest categories and (non-root) locations."""
    total_items = s.query(func.count(Item.id)).scalar() or 0
    total_categories = s.query(func.count(Category.id)).scalar() or 0
    total_locations = s.query(func.count(Location.id)).scalar() or 0
    low_stock = s.query(func.count(Item.id)).filter(Item.quantity <= low_stock_threshold).scalar() or 0
    parent_locations = s.query(func.count(Location.id)).filter(Location.parent_id.is_(None)).scalar() or 0

    occupied = select(Item.location_id).distinct()
    empty_locations = s.query(func.count(Location.id)).filter(Location.id.not_in(occupied)).scalar() or 0

    category_count = func.count(Item.id).label("item_count")
    top_categories = (
        s.query(Category.name, category_count)
        .outerjoin(Item, Item.category_id == Category.id)
        .group_by(Category.id, Category.name)
        .order_by(category_count.desc(), Category.name.asc())
        .limit(TOP_N)
        .all()
    )

    parent = aliased(Location)
    location_count = func.count(Item.id).label("item_count")
    top_locations = (
        s.query(Location.name, parent.name, location_count)
        .join(parent, parent.id == Location.parent_id)
        .outerjoin(Item, Item.location_id == Location.id)
        .group_by(Location.id, Location.name, parent.name)
        .order_by(location_count.desc(), Location.name.asc())
        .limit(TOP_N)
        .all()
    )

    return {
        "totalItems": int(total_items),
        "totalCategories": int(total_categories),
        "totalLocations": int(total_locations),
        "lowStockItems": int(low_stock),
        "emptyLocations": int(empty_locations),
        "parentLocations": int(parent_locations),
        "childLocations": int(total_locations) - int(parent_locations),
        "topCategories": [{"name": name, "itemCount": int(cnt)} for name, cnt in top_categories],
        "topLocations": [
            {"name": f"{parent_name} / {name}", "itemCount": int(cnt)} for name, parent_name, cnt in top_locations
        ],
    }
