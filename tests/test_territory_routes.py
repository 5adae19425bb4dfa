import base64
import io
import json

import pytest
from PIL import Image

from conftest import SQUARE, png_bytes
from territory_api.utils.gpx import make_gpx, parse_gpx
from territory_api.utils.network import UpstreamError

GPX = make_gpx([
    {"num": "1", "name": "Centre", "polygon": SQUARE},
    {"num": "2", "name": "Nord", "polygon": [{"lat": 48.87, "lon": 2.35}, {"lat": 48.88, "lon": 2.36}]},
])


def data_url(data: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(data).decode()


def territory_payload(num="1"):
    return {"num": num, "name": "Centre", "polygon": SQUARE}


async def test_routes_require_session(client):
    for method, url in [("get", "/data"), ("get", "/territories"), ("get", "/images"), ("get", "/user-config")]:
        response = await getattr(client, method)(url)
        assert response.status_code == 401, url


async def test_save_and_read_data(auth_client):
    missing = await auth_client.get("/data")
    assert missing.status_code == 404

    saved = await auth_client.post("/data", json={"gpxData": GPX})
    assert saved.status_code == 200
    assert saved.json()["success"] is True

    response = await auth_client.get("/data")
    body = response.json()
    assert body["success"] is True
    assert body["data"]["data"] == GPX
    assert body["data"]["userId"]


async def test_blank_data_is_rejected(auth_client):
    response = await auth_client.post("/data", json={"gpxData": "   "})
    assert response.status_code == 400


async def test_territories_without_images_are_default(auth_client):
    await auth_client.post("/data", json={"gpxData": GPX})

    territories = (await auth_client.get("/territories")).json()["territories"]
    assert [t["num"] for t in territories] == ["1", "2"]
    assert territories[0]["isDefault"] is True
    assert territories[0]["paintLayersImage"] == []
    assert "image" not in territories[0]


async def test_generate_standard_image(auth_client, small_pages, storage, current_user_id):
    await auth_client.post("/data", json={"gpxData": GPX})

    response = await auth_client.post(
        "/generate-image", json={"territory": territory_payload(), "imageType": "standard"}
    )
    assert response.status_code == 200, response.text
    assert response.json()["success"] is True

    for name in ("1-standard.png", "1-original.png", "1-miniature.webp"):
        assert storage.exists(f"/{current_user_id}/{name}"), name

    images = (await auth_client.get("/images", params={"territoryNumber": "1"})).json()["images"]
    assert sorted(i["imageType"] for i in images) == ["miniature", "original", "standard"]
    standard = next(i for i in images if i["imageType"] == "standard")
    assert standard["imageUrl"] == f"/{current_user_id}/1-standard.png"
    assert standard["rotation"] is not None

    territory = (await auth_client.get("/territories")).json()["territories"][0]
    base = f"http://localhost:5173/api/p/{current_user_id}"
    assert territory["isDefault"] is False
    assert territory["image"] == f"{base}/1-standard.png"
    assert territory["original"] == f"{base}/1-original.png"
    assert territory["miniature"] == f"{base}/1-miniature.webp"
    assert territory["rotation"] == pytest.approx(standard["rotation"])


async def test_generate_large_image_replaces_previous(auth_client, small_pages, storage, current_user_id, map_service):
    payload = {"territory": territory_payload(), "imageType": "large", "options": {"contourWidth": 3}}
    assert (await auth_client.post("/generate-image", json=payload)).status_code == 200
    assert (await auth_client.post("/generate-image", json=payload)).status_code == 200

    images = (await auth_client.get("/images", params={"imageType": "large"})).json()["images"]
    assert len(images) == 1
    assert json.loads(images[0]["bbox"])[0] < 2.35
    assert storage.exists(f"/{current_user_id}/1-originalLarge.png")
    assert len(map_service.urls) == 2


async def test_generate_image_with_crop(auth_client, small_pages, current_user_id):
    crop = {"x": 1, "y": 2, "width": 30, "height": 40, "imageWidth": 100, "imageHeight": 100}
    response = await auth_client.post(
        "/generate-image-with-crop",
        json={"territory": territory_payload(), "customBbox": [2.34, 48.85, 2.37, 48.86], "cropData": crop},
    )
    assert response.status_code == 200, response.text

    image = (await auth_client.get("/images", params={"imageType": "large"})).json()["images"][0]
    assert json.loads(image["bbox"]) == [2.34, 48.85, 2.37, 48.86]
    assert json.loads(image["cropData"])["imageWidth"] == 100


async def test_generate_image_upstream_failure(auth_client, small_pages, map_service):
    map_service.error = UpstreamError("down")
    response = await auth_client.post(
        "/generate-image", json={"territory": territory_payload(), "imageType": "standard"}
    )
    assert response.status_code == 502
    assert response.json()["error"]["message"] == "api.error.territory.imageGeneration"


async def test_generate_image_rejects_unknown_type(auth_client):
    response = await auth_client.post(
        "/generate-image", json={"territory": territory_payload(), "imageType": "poster"}
    )
    assert response.status_code == 400


async def test_generate_image_rejects_path_in_number(auth_client, small_pages, storage, map_service):
    for num in ("../victim/7", "7/../../victim/7", ".."):
        response = await auth_client.post(
            "/generate-image", json={"territory": territory_payload(num), "imageType": "standard"}
        )
        assert response.status_code == 400, num
        assert response.json()["error"]["message"] == "api.error.territory.invalidNumber"

    assert not (storage.root / "victim").exists()
    assert map_service.urls == []


async def test_delete_image(auth_client, small_pages, storage, current_user_id):
    await auth_client.post("/generate-image", json={"territory": territory_payload(), "imageType": "standard"})

    response = await auth_client.delete("/images/1/miniature")
    assert response.status_code == 200
    assert response.json()["message"] == "Image supprimée avec succès"
    assert not storage.exists(f"/{current_user_id}/1-miniature.webp")
    assert storage.exists(f"/{current_user_id}/1-standard.png")

    # already gone: still fine
    assert (await auth_client.delete("/images/1/miniature")).status_code == 200
    assert (await auth_client.delete("/images/1/poster")).status_code == 400


async def test_complete_update_saves_images_and_layers(auth_client, storage, current_user_id):
    await auth_client.post("/data", json={"gpxData": GPX})
    layer = {
        "type": "line",
        "visible": True,
        "locked": False,
        "style": {"color": "#ff0000", "width": 3},
        "data": {"points": [[0, 0], [10, 10]]},
    }
    body = {
        "territory": {**territory_payload(), "rotation": 0.5},
        "images": {"image": data_url(png_bytes(80, 50)), "miniature": data_url(png_bytes(40, 25))},
        "layers": {"paintLayersImage": [layer, {**layer, "type": "text"}], "paintLayersLarge": []},
    }

    response = await auth_client.put("/territories/1/complete", json=body)
    assert response.status_code == 200, response.text
    assert response.json()["message"] == "Territoire mis à jour avec succès"

    miniature = storage.resolve(f"/{current_user_id}/1-miniature.webp").read_bytes()
    assert Image.open(io.BytesIO(miniature)).format == "WEBP"

    territory = (await auth_client.get("/territories")).json()["territories"][0]
    assert territory["rotation"] == pytest.approx(0.5)
    assert territory["original"].endswith("/1-standard.png")
    assert sorted(l["type"] for l in territory["paintLayersImage"]) == ["line", "text"]
    assert territory["paintLayersImage"][0]["style"]["width"] == 3
    assert territory["paintLayersLarge"] == []

    # a second save replaces the layers
    body["layers"]["paintLayersImage"] = [layer]
    await auth_client.put("/territories/1/complete", json=body)
    layers = (await auth_client.get("/territories/1/layers")).json()["data"]
    assert len(layers) == 1


async def test_complete_update_number_mismatch(auth_client):
    response = await auth_client.put("/territories/2/complete", json={"territory": territory_payload("1")})
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "api.error.territory.numberMismatch"


async def test_complete_update_rejects_bad_image(auth_client):
    response = await auth_client.put(
        "/territories/1/complete",
        json={"territory": territory_payload(), "images": {"image": "data:image/png;base64,%%%"}},
    )
    assert response.status_code == 400


async def test_import_csv(auth_client):
    content = "id,zone,name,letter,prefix,coords\n1,z,Centre,4,C,[2.35,48.86] [2.36,48.86] [2.36,48.85]\n"
    response = await auth_client.post(
        "/data/import-csv", files={"file": ("export.csv", content.encode(), "text/csv")}
    )
    assert response.status_code == 200, response.text
    assert [t["num"] for t in response.json()["territories"]] == ["C4"]

    stored = (await auth_client.get("/data")).json()["data"]["data"]
    assert [t["num"] for t in parse_gpx(stored)] == ["C4"]


async def test_import_csv_without_territories(auth_client):
    response = await auth_client.post(
        "/data/import-csv", files={"file": ("export.csv", b"a,b\n1,2\n", "text/csv")}
    )
    assert response.status_code == 400


async def test_delete_data_removes_everything(auth_client, small_pages, storage, current_user_id):
    await auth_client.post("/data", json={"gpxData": GPX})
    await auth_client.post("/generate-image", json={"territory": territory_payload(), "imageType": "standard"})

    response = await auth_client.delete("/data")
    assert response.status_code == 200
    assert (await auth_client.get("/data")).status_code == 404
    assert (await auth_client.get("/images")).json()["images"] == []
    assert not storage.exists(f"/{current_user_id}/1-standard.png")
