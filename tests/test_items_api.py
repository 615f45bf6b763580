import io
import json
import re

from PIL import Image

from app.truinventory.db import session_scope
from app.truinventory.models import AuditLog

from conftest import login


def _setup(client, headers):
    cat = client.post(
        "/api/categories",
        json={
            "name": "Tools",
            "customFields": [
                {"name": "Color", "type": "select", "required": True, "options": ["Red", "Blue"]},
                {"name": "Weight", "type": "number"},
            ],
        },
        headers=headers,
    ).json
    plain = client.post("/api/categories", json={"name": "Supplies"}, headers=headers).json
    warehouse = client.post("/api/locations", json={"name": "Warehouse"}, headers=headers).json
    shelf = client.post("/api/locations", json={"name": "Shelf A", "parentId": warehouse["id"]}, headers=headers).json
    office = client.post("/api/locations", json={"name": "Office"}, headers=headers).json
    color_id = cat["customFields"][0]["id"]
    weight_id = cat["customFields"][1]["id"]
    return cat, plain, warehouse, shelf, office, color_id, weight_id


def _item(client, headers, name, category_id, location_id, **extra):
    r = client.post(
        "/api/items",
        json={"name": name, "categoryId": category_id, "locationId": location_id, **extra},
        headers=headers,
    )
    assert r.status_code == 201, r.json
    return r.json


def test_create_item(client, seeded_app):
    headers = login(client, "editor@example.com")
    cat, _, _, shelf, _, color_id, weight_id = _setup(client, headers)

    item = _item(
        client, headers, "Hammer", cat["id"], shelf["id"],
        quantity=3, description="Claw hammer", customFields={color_id: "Red", weight_id: "1.5"},
    )
    assert item["quantity"] == 3
    assert re.fullmatch(r"ITEM-\d+-[0-9A-F]{6}", item["qrCode"])
    assert item["customFields"] == {color_id: "Red", weight_id: 1.5}
    assert item["category"]["name"] == "Tools"
    assert item["location"]["fullPath"] == "/Warehouse/Shelf A"
    assert item["location"]["parent"]["name"] == "Warehouse"

    with session_scope(seeded_app) as s:
        log = s.query(AuditLog).filter(AuditLog.item_id == item["id"]).one()
        assert log.action == "CREATE"
        assert log.details["type"] == "ITEM_CREATED"
        assert log.user_email == "editor@example.com"


def test_create_validation(client):
    headers = login(client)
    cat, plain, _, shelf, _, color_id, _ = _setup(client, headers)

    r = client.post("/api/items", json={"name": "Hammer", "categoryId": cat["id"]}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Missing required fields"

    r = client.post("/api/items", json={"name": "Hammer", "categoryId": "nope", "locationId": shelf["id"]}, headers=headers)
    assert r.status_code == 404

    r = client.post("/api/items", json={"name": "Hammer", "categoryId": cat["id"], "locationId": "nope"}, headers=headers)
    assert r.status_code == 404

    r = client.post("/api/items", json={"name": "Hammer", "categoryId": cat["id"], "locationId": shelf["id"]}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Missing required custom fields: Color"

    r = client.post(
        "/api/items",
        json={"name": "Tape", "categoryId": plain["id"], "locationId": shelf["id"], "quantity": -1},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json["error"] == "Quantity cannot be negative"

    r = client.post(
        "/api/items",
        json={"name": "Tape", "categoryId": plain["id"], "locationId": shelf["id"], "quantity": 10**20},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json["error"] == "Quantity is too large"

    r = client.post(
        "/api/items",
        json={"name": "Hammer", "categoryId": cat["id"], "locationId": shelf["id"], "customFields": {color_id: "Green"}},
        headers=headers,
    )
    assert r.status_code == 400


def test_list_search_filter_and_paginate(client):
    headers = login(client)
    cat, plain, warehouse, shelf, office, color_id, _ = _setup(client, headers)
    _item(client, headers, "Hammer", cat["id"], shelf["id"], customFields={color_id: "Red"})
    _item(client, headers, "Screwdriver", cat["id"], office["id"], customFields={color_id: "Blue"})
    _item(client, headers, "Tape", plain["id"], warehouse["id"], description="Duct tape for hammer repairs")

    r = client.get("/api/items?search=HAMMER")
    assert sorted(i["name"] for i in r.json["items"]) == ["Hammer", "Tape"]

    # LIKE wildcards in the search text match literally.
    assert client.get("/api/items?search=%25").json["items"] == []
    assert client.get("/api/items?search=_").json["items"] == []

    r = client.get(f"/api/items?locationId={warehouse['id']}")
    assert sorted(i["name"] for i in r.json["items"]) == ["Hammer", "Tape"]

    r = client.get(f"/api/items?categoryId={plain['id']}")
    assert [i["name"] for i in r.json["items"]] == ["Tape"]

    r = client.get("/api/items?locationId=missing")
    assert r.json["items"] == []
    assert r.json["pagination"]["total"] == 0

    r = client.get("/api/items?page=2&limit=2")
    assert r.json["pagination"] == {"total": 3, "page": 2, "limit": 2, "totalPages": 2}
    assert len(r.json["items"]) == 1

    r = client.get("/api/items")
    assert r.json["pagination"]["limit"] == 10
    assert [i["name"] for i in r.json["items"]] == ["Tape", "Screwdriver", "Hammer"]


def test_update_item(client, seeded_app):
    headers = login(client)
    cat, plain, _, shelf, office, color_id, _ = _setup(client, headers)
    item = _item(client, headers, "Hammer", cat["id"], shelf["id"], quantity=2, customFields={color_id: "Red"})

    r = client.patch(
        f"/api/items/{item['id']}",
        json={"quantity": 7, "locationId": office["id"], "customFields": {color_id: "Blue"}},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json["quantity"] == 7
    assert r.json["location"]["name"] == "Office"
    assert r.json["name"] == "Hammer"
    assert r.json["customFields"][color_id] == "Blue"

    r = client.patch(f"/api/items/{item['id']}", json={"customFields": {}}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Missing required custom fields: Color"

    # Moving to a category without required fields keeps the old values as extra keys.
    r = client.put(f"/api/items/{item['id']}", json={"categoryId": plain["id"]}, headers=headers)
    assert r.status_code == 200
    assert r.json["category"]["name"] == "Supplies"

    r = client.patch(f"/api/items/{item['id']}", json={"categoryId": "nope"}, headers=headers)
    assert r.status_code == 404

    for body in ({"categoryId": None}, {"locationId": ""}):
        r = client.patch(f"/api/items/{item['id']}", json=body, headers=headers)
        assert r.status_code == 400
        assert r.json["error"] == "Missing required fields"

    with session_scope(seeded_app) as s:
        log = (
            s.query(AuditLog)
            .filter(AuditLog.item_id == item["id"], AuditLog.action == "UPDATE")
            .order_by(AuditLog.created_at.asc())
            .first()
        )
        changes = log.details["changes"]
        assert changes["quantity"] == {"from": 2, "to": 7}
        assert changes["locationId"] == {"from": shelf["id"], "to": office["id"]}
        assert "name" not in changes


def test_moving_into_category_with_required_fields(client):
    headers = login(client)
    cat, plain, _, shelf, _, color_id, _ = _setup(client, headers)
    item = _item(client, headers, "Tape", plain["id"], shelf["id"])

    r = client.patch(f"/api/items/{item['id']}", json={"categoryId": cat["id"]}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Missing required custom fields: Color"

    r = client.patch(
        f"/api/items/{item['id']}",
        json={"categoryId": cat["id"], "customFields": {color_id: "Red"}},
        headers=headers,
    )
    assert r.status_code == 200


def test_lookup_by_qr_and_regenerate(client, seeded_app):
    headers = login(client)
    _, plain, _, shelf, _, _, _ = _setup(client, headers)
    item = _item(client, headers, "Tape", plain["id"], shelf["id"])

    r = client.get(f"/api/items/by-qr/{item['qrCode']}")
    assert r.status_code == 200
    assert r.json["id"] == item["id"]
    assert client.get("/api/items/by-qr/ITEM-0-000000").status_code == 404

    r = client.post(f"/api/items/{item['id']}/qr/regenerate", headers=headers)
    assert r.status_code == 200
    assert r.json["qrCode"] != item["qrCode"]
    assert client.get(f"/api/items/by-qr/{item['qrCode']}").status_code == 404

    with session_scope(seeded_app) as s:
        types = [log.details.get("type") for log in s.query(AuditLog).filter(AuditLog.item_id == item["id"]).all()]
        assert "ITEM_QR_REGENERATED" in types


def test_qr_png(client, seeded_app):
    headers = login(client)
    _, plain, _, shelf, _, _, _ = _setup(client, headers)
    item = _item(client, headers, "Tape", plain["id"], shelf["id"])

    r = client.get(f"/api/items/{item['id']}/qr.png")
    assert r.status_code == 200
    assert r.mimetype == "image/png"
    normal = Image.open(io.BytesIO(r.data))
    assert normal.width == normal.height

    r = client.get(f"/api/items/{item['id']}/qr.png?format=label")
    assert r.status_code == 200
    label = Image.open(io.BytesIO(r.data))
    assert label.height > label.width

    assert client.get(f"/api/items/{item['id']}/qr.png?format=poster").status_code == 400
    assert client.get("/api/items/missing/qr.png").status_code == 404


def test_qr_payload():
    from app.truinventory.modules.items.models import Item
    from app.truinventory.modules.items.qr import qr_payload

    item = Item(id="abc", name="Tape", quantity=4, qr_code="ITEM-1-ABCDEF")
    assert qr_payload(item, "https://inv.example.com/") == "https://inv.example.com/inventory/abc"
    assert json.loads(qr_payload(item)) == {
        "id": "abc",
        "qrCode": "ITEM-1-ABCDEF",
        "name": "Tape",
        "quantity": 4,
        "category": None,
        "location": None,
    }


def test_delete_item(client, seeded_app):
    headers = login(client)
    _, plain, _, shelf, _, _, _ = _setup(client, headers)
    first = _item(client, headers, "Tape", plain["id"], shelf["id"])
    second = _item(client, headers, "Glue", plain["id"], shelf["id"])

    assert client.delete(f"/api/items/{first['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/items/{first['id']}").status_code == 404

    assert client.delete("/api/items", headers=headers).status_code == 400
    assert client.delete(f"/api/items?id={second['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/items?id={second['id']}", headers=headers).status_code == 404

    with session_scope(seeded_app) as s:
        deleted = [log.details for log in s.query(AuditLog).filter(AuditLog.action == "DELETE").all()]
        assert {d["itemId"] for d in deleted} == {first["id"], second["id"]}
        assert all(d["type"] == "ITEM_DELETED" for d in deleted)


def test_read_only_user_cannot_modify(client):
    headers = login(client)
    _, plain, _, shelf, _, _, _ = _setup(client, headers)
    item = _item(client, headers, "Tape", plain["id"], shelf["id"])
    client.post("/api/auth/logout")

    viewer = login(client, "viewer@example.com")
    assert client.get(f"/api/items/{item['id']}").status_code == 200
    assert client.patch(f"/api/items/{item['id']}", json={"quantity": 1}, headers=viewer).status_code == 403
    assert client.delete(f"/api/items/{item['id']}", headers=viewer).status_code == 403
