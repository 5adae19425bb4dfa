import json

from conftest import register


def layer_payload(**overrides):
    payload = {
        "imageType": "standard",
        "layerType": "circle",
        "style": json.dumps({"color": "#0000ff", "width": 2}),
        "layerData": json.dumps({"center": [10, 10], "radius": 4}),
        "name": "Parking",
    }
    payload.update(overrides)
    return payload


async def test_create_and_read_layer(auth_client, current_user_id):
    response = await auth_client.post("/territories/7/layers", json=layer_payload())
    assert response.status_code == 201, response.text
    layer = response.json()["data"]
    assert layer["territoryNumber"] == "7"
    assert layer["userId"] == current_user_id
    assert layer["visible"] is True
    assert layer["locked"] is False

    fetched = await auth_client.get(f"/territories/layers/{layer['id']}")
    assert fetched.status_code == 200
    assert json.loads(fetched.json()["data"]["layerData"])["radius"] == 4


async def test_list_layers_filters_by_image_type(auth_client):
    await auth_client.post("/territories/7/layers", json=layer_payload())
    await auth_client.post("/territories/7/layers", json=layer_payload(imageType="large", layerType="arrow"))
    await auth_client.post("/territories/8/layers", json=layer_payload())

    everything = (await auth_client.get("/territories/7/layers")).json()["data"]
    assert len(everything) == 2

    large = (await auth_client.get("/territories/7/layers", params={"imageType": "large"})).json()["data"]
    assert [l["layerType"] for l in large] == ["arrow"]


async def test_create_layer_rejects_unknown_type(auth_client):
    response = await auth_client.post("/territories/7/layers", json=layer_payload(layerType="spray"))
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "validation_error"


async def test_create_layer_rejects_number_with_path(auth_client):
    response = await auth_client.post("/territories/..%20x/layers", json=layer_payload())
    assert response.status_code == 400

    response = await auth_client.post("/territories/7/layers", json=layer_payload(territoryNumber="../7"))
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "api.error.territory.invalidNumber"


async def test_create_layer_requires_json_fields(auth_client):
    for field in ("style", "layerData"):
        response = await auth_client.post("/territories/7/layers", json=layer_payload(**{field: "red"}))
        assert response.status_code == 400, field
        assert response.json()["error"]["message"] == "api.error.layer.invalidJson"

    assert (await auth_client.get("/territories/7/layers")).json()["data"] == []
    assert (await auth_client.get("/territories")).status_code == 200


async def test_update_layer(auth_client):
    layer = (await auth_client.post("/territories/7/layers", json=layer_payload())).json()["data"]

    response = await auth_client.patch(f"/territories/layers/{layer['id']}", json={"visible": False, "locked": True})
    assert response.status_code == 200
    assert response.json()["message"] == "Layer mis à jour avec succès"

    updated = (await auth_client.get(f"/territories/layers/{layer['id']}")).json()["data"]
    assert updated["visible"] is False
    assert updated["locked"] is True
    assert updated["name"] == "Parking"


async def test_update_layer_validates_json(auth_client):
    layer = (await auth_client.post("/territories/7/layers", json=layer_payload())).json()["data"]

    response = await auth_client.patch(f"/territories/layers/{layer['id']}", json={"style": "{broken"})
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "api.error.layer.invalidJson"

    fetched = (await auth_client.get(f"/territories/layers/{layer['id']}")).json()["data"]
    assert fetched["style"] == layer["style"]


async def test_update_layer_ignores_null_flags(auth_client):
    layer = (await auth_client.post("/territories/7/layers", json=layer_payload())).json()["data"]

    response = await auth_client.patch(
        f"/territories/layers/{layer['id']}",
        json={"visible": None, "locked": None, "style": None, "layerData": None, "name": None},
    )
    assert response.status_code == 200

    updated = (await auth_client.get(f"/territories/layers/{layer['id']}")).json()["data"]
    assert updated["visible"] is True
    assert updated["locked"] is False
    assert updated["style"] == layer["style"]
    assert updated["layerData"] == layer["layerData"]
    assert updated["name"] is None


async def test_missing_layer_is_404(auth_client):
    for method in ("get", "delete"):
        response = await getattr(auth_client, method)("/territories/layers/unknown")
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "api.error.layer.notFound"

    response = await auth_client.patch("/territories/layers/unknown", json={"visible": False})
    assert response.status_code == 404


async def test_layers_are_private(auth_client, client):
    layer = (await auth_client.post("/territories/7/layers", json=layer_payload())).json()["data"]

    await auth_client.get("/auth/logout")

    await register(client, username="bob", email="bob@example.com")
    assert (await client.get(f"/territories/layers/{layer['id']}")).status_code == 404
    assert (await client.get("/territories/7/layers")).json()["data"] == []


async def test_delete_layers(auth_client):
    first = (await auth_client.post("/territories/7/layers", json=layer_payload())).json()["data"]
    await auth_client.post("/territories/7/layers", json=layer_payload())
    await auth_client.post("/territories/7/layers", json=layer_payload(imageType="large"))

    response = await auth_client.delete(f"/territories/layers/{first['id']}")
    assert response.json()["message"] == "Layer supprimé avec succès"

    response = await auth_client.delete("/territories/7/layers", params={"imageType": "standard"})
    assert response.json()["message"] == "1 layers supprimés avec succès"

    remaining = (await auth_client.get("/territories/7/layers")).json()["data"]
    assert [l["imageType"] for l in remaining] == ["large"]
