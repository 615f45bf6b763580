from app.truinventory.db import session_scope
from app.truinventory.models import AuditLog
from app.truinventory.modules.locations.models import Location

from conftest import login


def _create(client, headers, name, parent_id=None):
    r = client.post("/api/locations", json={"name": name, "parentId": parent_id}, headers=headers)
    assert r.status_code == 201, r.json
    return r.json


def _category_and_item(client, headers, location_id):
    cat = client.post("/api/categories", json={"name": "Tools"}, headers=headers).json
    r = client.post(
        "/api/items",
        json={"name": "Hammer", "categoryId": cat["id"], "locationId": location_id},
        headers=headers,
    )
    assert r.status_code == 201, r.json
    return r.json


def test_create_and_tree(client):
    headers = login(client, "editor@example.com")
    warehouse = _create(client, headers, "Warehouse")
    aisle = _create(client, headers, "Aisle 1", warehouse["id"])
    _create(client, headers, "Office")

    assert aisle["fullPath"] == "/Warehouse/Aisle 1"
    assert aisle["level"] == 1

    r = client.get("/api/locations")
    assert r.status_code == 200
    assert [n["name"] for n in r.json] == ["Office", "Warehouse"]
    assert r.json[1]["children"][0]["id"] == aisle["id"]

    r = client.get("/api/locations?flat=1")
    assert [n["name"] for n in r.json] == ["Office", "Warehouse", "Aisle 1"]


def test_create_validation(client):
    headers = login(client)
    r = client.post("/api/locations", json={"name": "  "}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Name is required"

    r = client.post("/api/locations", json={"name": "Bin", "parentId": "missing"}, headers=headers)
    assert r.status_code == 404

    _create(client, headers, "Warehouse")
    r = client.post("/api/locations", json={"name": "Warehouse"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "A location with this path already exists"


def test_read_only_cannot_write(client):
    headers = login(client, "viewer@example.com")
    assert client.get("/api/locations").status_code == 200
    r = client.post("/api/locations", json={"name": "Warehouse"}, headers=headers)
    assert r.status_code == 403


def test_detail_includes_breadcrumb(client):
    headers = login(client)
    warehouse = _create(client, headers, "Warehouse")
    aisle = _create(client, headers, "Aisle 1", warehouse["id"])
    shelf = _create(client, headers, "Shelf A", aisle["id"])
    _category_and_item(client, headers, shelf["id"])

    r = client.get(f"/api/locations/{aisle['id']}")
    assert r.status_code == 200
    assert [a["name"] for a in r.json["ancestors"]] == ["Warehouse"]
    assert [c["name"] for c in r.json["children"]] == ["Shelf A"]
    assert r.json["itemCount"] == 0
    assert r.json["subtreeItemCount"] == 1

    assert client.get("/api/locations/missing").status_code == 404


def test_move_updates_descendants_and_audits(client, seeded_app):
    headers = login(client)
    warehouse = _create(client, headers, "Warehouse")
    aisle = _create(client, headers, "Aisle 1", warehouse["id"])
    shelf = _create(client, headers, "Shelf A", aisle["id"])
    office = _create(client, headers, "Office")

    r = client.patch(f"/api/locations/{aisle['id']}", json={"parentId": office["id"]}, headers=headers)
    assert r.status_code == 200
    assert r.json["fullPath"] == "/Office/Aisle 1"

    shelf_now = client.get(f"/api/locations/{shelf['id']}").json
    assert shelf_now["fullPath"] == "/Office/Aisle 1/Shelf A"
    assert shelf_now["path"] == f"/{office['id']}/{aisle['id']}/"

    r = client.put(f"/api/locations/{aisle['id']}", json={"parentId": None}, headers=headers)
    assert r.status_code == 200
    assert r.json["parentId"] is None
    assert r.json["level"] == 0

    with session_scope(seeded_app) as s:
        log = (
            s.query(AuditLog)
            .filter(AuditLog.action == "UPDATE")
            .order_by(AuditLog.created_at.asc())
            .first()
        )
        assert log.details["type"] == "LOCATION_UPDATED"
        assert log.details["changes"]["parentId"] == {"from": warehouse["id"], "to": office["id"]}
        assert "name" not in log.details["changes"]


def test_move_under_descendant_rejected(client):
    headers = login(client)
    warehouse = _create(client, headers, "Warehouse")
    aisle = _create(client, headers, "Aisle 1", warehouse["id"])

    r = client.patch(f"/api/locations/{warehouse['id']}", json={"parentId": aisle["id"]}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Cannot move a location to its own descendant"

    r = client.patch(f"/api/locations/{warehouse['id']}", json={"parentId": warehouse["id"]}, headers=headers)
    assert r.status_code == 400


def test_rename_conflict(client):
    headers = login(client)
    _create(client, headers, "Warehouse")
    office = _create(client, headers, "Office")
    r = client.patch(f"/api/locations/{office['id']}", json={"name": "Warehouse"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "A location with this path already exists"


def test_delete_blocked_by_items_in_subtree(client, seeded_app):
    headers = login(client)
    warehouse = _create(client, headers, "Warehouse")
    aisle = _create(client, headers, "Aisle 1", warehouse["id"])
    _category_and_item(client, headers, aisle["id"])

    r = client.delete(f"/api/locations/{warehouse['id']}", headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Cannot delete location with items. Please reassign all items first."


def test_delete_removes_subtree(client, seeded_app):
    headers = login(client)
    warehouse = _create(client, headers, "Warehouse")
    aisle = _create(client, headers, "Aisle 1", warehouse["id"])
    _create(client, headers, "Shelf A", aisle["id"])

    r = client.delete(f"/api/locations/{warehouse['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json == {"success": True, "removed": 3}

    with session_scope(seeded_app) as s:
        assert s.query(Location).count() == 0

    assert client.delete(f"/api/locations/{warehouse['id']}", headers=headers).status_code == 404
