import re
from unittest.mock import AsyncMock, patch

from app.services.store import MutationError

from conftest import PASSAT
from test_images import PNG_BYTES, PNG_DATA_URL


class TestCatalogEndpoints:

    def test_list_is_empty(self, client):
        response = client.get("/api/v1/listings")
        assert response.status_code == 200
        assert response.json() == []

    def test_list_in_display_order(self, client, passat):
        client.post("/api/v1/listings", json={"brand": "Kia", "model": "Sportage"})
        data = client.get("/api/v1/listings").json()
        assert [car["brand"] for car in data] == ["Volkswagen", "Kia"]

    def test_get_one(self, client, passat):
        response = client.get(f"/api/v1/listings/{passat['id']}")
        assert response.status_code == 200
        assert response.json()["model"] == "Passat Variant"

    def test_get_unknown_is_404(self, client):
        response = client.get("/api/v1/listings/ghost")
        assert response.status_code == 404

    def test_search(self, client, passat):
        client.post("/api/v1/listings", json={"brand": "Kia", "model": "Sportage", "fuel": "Híbrido"})
        data = client.get("/api/v1/listings/search", params={"q": "híbrido"}).json()
        assert [car["brand"] for car in data] == ["Kia"]
        assert client.get("/api/v1/listings/search").json() == []


class TestCreateEndpoint:

    def test_create_derives_id(self, client):
        response = client.post("/api/v1/listings", json={"brand": "Kia", "model": "Sportage", "price": "24200€"})
        assert response.status_code == 201
        assert re.fullmatch(r"kia-sportage-\d+", response.json()["id"])

    def test_inline_image_is_uploaded(self, client, bucket):
        response = client.post(
            "/api/v1/listings",
            json={"brand": "Kia", "model": "Sportage", "image": PNG_DATA_URL},
        )
        assert response.status_code == 201
        image = response.json()["image"]
        assert image.startswith("https://files.test/cars/kia_sportage/main_")
        (content_type, body), = bucket.uploads.values()
        assert content_type == "image/png"
        assert body == PNG_BYTES

    def test_inline_image_without_brand_is_422(self, client, bucket):
        response = client.post("/api/v1/listings", json={"brand": "", "model": "Sportage", "image": PNG_DATA_URL})
        assert response.status_code == 422
        assert bucket.uploads == {}

    def test_too_many_exterior_images_is_422(self, client):
        response = client.post(
            "/api/v1/listings",
            json={"brand": "Kia", "model": "Sportage", "gallery_exterior": ["https://cdn.test/x.jpg"] * 6},
        )
        assert response.status_code == 422

    def test_upload_failure_is_502(self, client, bucket):
        bucket.status = 500
        response = client.post("/api/v1/listings", json={"brand": "Kia", "model": "Sportage", "logo": PNG_DATA_URL})
        assert response.status_code == 502
        assert client.get("/api/v1/listings").json() == []

    def test_duplicate_id_is_409(self, client, passat):
        response = client.post("/api/v1/listings", json=PASSAT)
        assert response.status_code == 409

    def test_duplicate_id_uploads_nothing(self, client, passat, bucket):
        response = client.post("/api/v1/listings", json={**PASSAT, "image": PNG_DATA_URL})
        assert response.status_code == 409
        assert bucket.uploads == {}

    def test_storage_failure_is_502(self, client):
        store = client.app.state.store
        with patch.object(store, "create", new=AsyncMock(side_effect=MutationError("write rejected"))):
            response = client.post("/api/v1/listings", json={"brand": "Kia", "model": "Sportage"})
        assert response.status_code == 502
        assert "write rejected" in response.json()["detail"]


class TestUpdateEndpoint:

    def test_patch_merges_fields(self, client, passat):
        response = client.patch(f"/api/v1/listings/{passat['id']}", json={"price": "12900€", "sold": True})
        assert response.status_code == 200
        data = response.json()
        assert data["price"] == "12900€"
        assert data["sold"] is True
        assert data["brand"] == "Volkswagen"
        assert data["image"] == PASSAT["image"]

    def test_patch_uploads_with_stored_brand_and_model(self, client, passat):
        response = client.patch(f"/api/v1/listings/{passat['id']}", json={"gallery_interior": [PNG_DATA_URL]})
        assert response.status_code == 200
        interior = response.json()["gallery_interior"]
        assert interior[0].startswith("https://files.test/cars/volkswagen_passat_variant/int0_")
        assert interior[1:] == [None] * 8

    def test_patch_unknown_is_404(self, client):
        response = client.patch("/api/v1/listings/ghost", json={"price": "1€"})
        assert response.status_code == 404

    def test_stale_version_is_409(self, client, passat):
        version = passat["version"]
        assert client.patch(
            f"/api/v1/listings/{passat['id']}", params={"expected_version": version}, json={"km": "1 km"}
        ).status_code == 200
        response = client.patch(
            f"/api/v1/listings/{passat['id']}", params={"expected_version": version}, json={"km": "2 km"}
        )
        assert response.status_code == 409

    def test_null_required_field_is_422(self, client, passat):
        response = client.patch(f"/api/v1/listings/{passat['id']}", json={"brand": None})
        assert response.status_code == 422
        assert client.get(f"/api/v1/listings/{passat['id']}").json()["brand"] == "Volkswagen"

    def test_catalog_stays_writable_after_rejected_patch(self, client, passat):
        client.patch(f"/api/v1/listings/{passat['id']}", json={"model": None, "sold": None})

        created = client.post("/api/v1/listings", json={"brand": "Kia", "model": "Sportage"})
        assert created.status_code == 201
        ids = [car["id"] for car in client.get("/api/v1/listings").json()]
        assert ids == [passat["id"], created.json()["id"]]


class TestDeleteAndOrderEndpoints:

    def test_delete(self, client, passat):
        response = client.delete(f"/api/v1/listings/{passat['id']}")
        assert response.status_code == 200
        assert client.get(f"/api/v1/listings/{passat['id']}").status_code == 404

    def test_delete_unknown_is_404(self, client):
        assert client.delete("/api/v1/listings/ghost").status_code == 404

    def test_reorder(self, client, passat):
        kia = client.post("/api/v1/listings", json={"brand": "Kia", "model": "Sportage"}).json()
        response = client.put("/api/v1/listings/order", json={"ids": [kia["id"], passat["id"]]})
        assert response.status_code == 200
        assert [car["id"] for car in response.json()] == [kia["id"], passat["id"]]
        assert [car["id"] for car in client.get("/api/v1/listings").json()] == [kia["id"], passat["id"]]

    def test_partial_reorder_is_422(self, client, passat):
        client.post("/api/v1/listings", json={"brand": "Kia", "model": "Sportage"})
        response = client.put("/api/v1/listings/order", json={"ids": [passat["id"]]})
        assert response.status_code == 422
