"""
Tests for the HTTP surface
"""
from datetime import datetime, timezone

import pytest
from fastapi import Depends

from catalog.db import get_db
from catalog.deps import get_product_service
from catalog.products import ProductService
from catalog.reconciler import ImageMode
from catalog.storage_client import get_storage
from conftest import PNG


def png(name):
    return ("images", (name, PNG + name.encode(), "image/png"))


def create(client, name="Widget", files=(), **fields):
    return client.post("/products", data={"name": name, **fields}, files=list(files) or None)


@pytest.fixture
def fixed_slots(client):
    from catalog.main import app

    def fixed_service(db=Depends(get_db), store=Depends(get_storage)):
        return ProductService(db, store, capacity=4, mode=ImageMode.APPEND_FIXED_SLOTS)

    app.dependency_overrides[get_product_service] = fixed_service
    yield client
    app.dependency_overrides.pop(get_product_service, None)


class TestHealth:

    def test_root(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestCreateProduct:

    def test_create_with_images(self, client, store):
        resp = create(client, price="9.99", discount="150", files=[png("a.png"), png("b.png")])

        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert isinstance(body["id"], int)
        assert len(body["images"]) == 2
        assert body["image_main"] == body["images"][0]
        assert body["dropped"] == []
        assert len(store.objects) == 2

        listed = client.get("/products").json()
        assert listed[0]["discount"] == 100
        assert listed[0]["images"] == body["images"]
        assert "image_thumb1" not in listed[0]

    def test_missing_name(self, client, store):
        resp = client.post("/products", data={"price": "3"}, files=[png("a.png")])
        assert resp.status_code == 400
        assert resp.json() == {"detail": "Product name is required"}
        assert store.puts == []

    def test_bad_price(self, client):
        resp = create(client, price="cheap")
        assert resp.status_code == 400
        assert "price" in resp.json()["detail"]

    def test_storage_failure_is_generic_500(self, client, store):
        store.fail_data.add(b"boom")
        files = [png("a.png"), ("images", ("b.png", b"boom", "image/png"))]

        resp = create(client, files=files)

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Storage operation failed"}
        assert store.objects == {}
        assert client.get("/products").json() == []

    def test_overflow_is_reported(self, client):
        files = [png(f"{i}.png") for i in range(6)]

        def small_service(db=Depends(get_db), store=Depends(get_storage)):
            return ProductService(db, store, capacity=2)

        client.app.dependency_overrides[get_product_service] = small_service
        try:
            resp = create(client, files=files)
        finally:
            client.app.dependency_overrides.pop(get_product_service, None)

        assert resp.status_code == 201
        assert len(resp.json()["images"]) == 2
        assert resp.json()["dropped"] == ["2.png", "3.png", "4.png", "5.png"]


class TestUpdateProduct:

    def test_update_fields_and_append(self, client):
        product_id = create(client, price="10", discount="20", files=[png("a.png")]).json()["id"]

        resp = client.put(f"/products/{product_id}", data={"price": "0"}, files=[png("b.png")])

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert len(body["images"]) == 2

        product = client.get(f"/products/{product_id}").json()
        assert product["price"] == 0
        assert product["discount"] == 20
        assert product["name"] == "Widget"

    def test_update_without_files(self, client):
        product_id = create(client).json()["id"]
        resp = client.put(f"/products/{product_id}", data={"name": "Gadget"})
        assert resp.status_code == 200
        assert client.get(f"/products/{product_id}").json()["name"] == "Gadget"

    def test_update_missing_product(self, client):
        resp = client.put("/products/404", data={"name": "Ghost"})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Product 404 not found"

    def test_missing_product_wins_over_bad_fields(self, client):
        resp = client.put("/products/999", data={"name": " "})
        assert resp.status_code == 404


class TestDeleteProduct:

    def test_delete(self, client, store):
        product_id = create(client, files=[png("a.png"), png("b.png"), png("c.png")]).json()["id"]

        resp = client.delete(f"/products/{product_id}")

        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert store.objects == {}
        assert client.get(f"/products/{product_id}").status_code == 404

    def test_delete_missing(self, client):
        assert client.delete("/products/12345").status_code == 404

    def test_storage_failure_keeps_product(self, client, store):
        body = create(client, files=[png("a.png")]).json()
        store.fail_delete.update(store.objects)

        resp = client.delete(f"/products/{body['id']}")

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Storage operation failed"}
        assert client.get(f"/products/{body['id']}").status_code == 200


class TestReorder:

    def test_reorder(self, client):
        ids = [create(client, name=n).json()["id"] for n in ("A", "B", "C")]

        resp = client.post("/products/reorder", json={"orderedIds": [ids[1], ids[2], ids[0]]})

        assert resp.status_code == 200
        assert [p["name"] for p in client.get("/products").json()] == ["B", "C", "A"]

    @pytest.mark.parametrize("payload", [{"orderedIds": []}, {"orderedIds": "1,2"}, {}, [1, 2], "1,2"])
    def test_reorder_bad_payload(self, client, payload):
        resp = client.post("/products/reorder", json=payload)
        assert resp.status_code == 400

    def test_reorder_without_body(self, client):
        assert client.post("/products/reorder").status_code == 400


def test_fixed_slot_layout(fixed_slots):
    client = fixed_slots
    create(client, files=[png("a.png"), png("b.png")])

    product = client.get("/products").json()[0]

    assert product["image_main"] == product["images"][0]
    assert product["image_thumb1"] == product["images"][1]
    assert product["image_thumb2"] is None
    assert product["image_thumb3"] is None


def test_visit_stats(client):
    for _ in range(3):
        assert client.post("/track-visit").json() == {"status": "ok"}

    stats = client.get("/admin/stats").json()

    month = datetime.now(timezone.utc).strftime("%Y-%m")
    assert stats == [{"month": month, "count": 3}]
