from app.truinventory.db import session_scope
from app.truinventory.modules.categories.models import CustomField

from conftest import login

FIELDS = [
    {"name": "Color", "type": "select", "required": True, "options": ["Red", "Blue"]},
    {"name": "Weight", "type": "number"},
]


def _create(client, headers, name="Tools", fields=FIELDS):
    r = client.post("/api/categories", json={"name": name, "description": "Hand tools", "customFields": fields}, headers=headers)
    assert r.status_code == 201, r.json
    return r.json


def test_create_with_custom_fields(client):
    headers = login(client)
    cat = _create(client, headers)
    assert cat["name"] == "Tools"
    assert cat["_count"] == {"items": 0}
    assert [(f["name"], f["type"], f["required"]) for f in cat["customFields"]] == [
        ("Color", "select", True),
        ("Weight", "number", False),
    ]
    assert cat["customFields"][0]["options"] == ["Red", "Blue"]

    r = client.get("/api/categories")
    assert [c["name"] for c in r.json] == ["Tools"]


def test_duplicate_name_rejected(client):
    headers = login(client)
    _create(client, headers)
    r = client.post("/api/categories", json={"name": "Tools"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Category already exists"


def test_invalid_field_definitions(client):
    headers = login(client)
    r = client.post(
        "/api/categories",
        json={"name": "Tools", "customFields": [{"name": "Size", "type": "colour"}]},
        headers=headers,
    )
    assert r.status_code == 400
    assert "invalid type" in r.json["error"]


def test_update_syncs_fields(client, seeded_app):
    headers = login(client)
    cat = _create(client, headers)
    color, weight = cat["customFields"]

    r = client.put(
        f"/api/categories/{cat['id']}",
        json={
            "name": "Power Tools",
            "customFields": [
                {"id": color["id"], "name": "Colour", "type": "select", "required": False, "options": ["Red"]},
                {"name": "Voltage", "type": "text"},
            ],
        },
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json["name"] == "Power Tools"
    names = {f["name"]: f for f in r.json["customFields"]}
    assert set(names) == {"Colour", "Voltage"}
    assert names["Colour"]["id"] == color["id"]
    assert names["Colour"]["required"] is False

    with session_scope(seeded_app) as s:
        assert s.get(CustomField, weight["id"]) is None


def test_custom_fields_endpoint(client):
    headers = login(client)
    cat = _create(client, headers)

    r = client.get(f"/api/categories/{cat['id']}/custom-fields")
    assert [f["name"] for f in r.json] == ["Color", "Weight"]

    r = client.put(
        f"/api/categories/{cat['id']}/custom-fields",
        json=[{"name": "Serial", "type": "text", "required": True}],
        headers=headers,
    )
    assert r.status_code == 200
    assert [f["name"] for f in r.json] == ["Serial"]

    r = client.put(f"/api/categories/{cat['id']}/custom-fields", json={"other": 1}, headers=headers)
    assert r.status_code == 400

    r = client.put(
        f"/api/categories/{cat['id']}/custom-fields",
        json={"customFields": [{"id": "not-mine", "name": "X"}]},
        headers=headers,
    )
    assert r.status_code == 400
    assert "does not belong" in r.json["error"]


def test_delete_blocked_while_items_exist(client):
    headers = login(client)
    cat = _create(client, headers, fields=[])
    loc = client.post("/api/locations", json={"name": "Warehouse"}, headers=headers).json
    item = client.post(
        "/api/items",
        json={"name": "Hammer", "categoryId": cat["id"], "locationId": loc["id"]},
        headers=headers,
    ).json

    r = client.delete(f"/api/categories/{cat['id']}", headers=headers)
    assert r.status_code == 400
    assert r.json["error"].startswith("Cannot delete category with items")
    assert client.get(f"/api/categories/{cat['id']}").json["_count"] == {"items": 1}

    assert client.delete(f"/api/items/{item['id']}", headers=headers).status_code == 200
    r = client.delete(f"/api/categories/{cat['id']}", headers=headers)
    assert r.status_code == 200
    assert client.get(f"/api/categories/{cat['id']}").status_code == 404


def test_delete_cascades_field_definitions(client, seeded_app):
    headers = login(client)
    cat = _create(client, headers)
    assert client.delete(f"/api/categories/{cat['id']}", headers=headers).status_code == 200
    with session_scope(seeded_app) as s:
        assert s.query(CustomField).count() == 0


def test_custom_field_mapping(client):
    headers = login(client)
    cat = _create(client, headers)
    r = client.get("/api/custom-fields/mapping")
    assert r.status_code == 200
    color_id = cat["customFields"][0]["id"]
    assert r.json[color_id] == {"name": "Color", "categoryName": "Tools"}
    assert r.json["cf_01"] == {"name": "Color", "categoryName": "Legacy"}


def test_rename_onto_existing_name_rejected(client):
    headers = login(client)
    tools = _create(client, headers, "Tools", fields=[])
    _create(client, headers, "Supplies", fields=[])

    r = client.put(f"/api/categories/{tools['id']}", json={"name": "Supplies"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Category already exists"

    r = client.get(f"/api/categories/{tools['id']}")
    assert r.json["name"] == "Tools"
