# backend/catalog_service/tests/test_main.py

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.main import app, get_schema
from app.models import Product, ProductImage, ProductReview, ProductService
from app.schema_probe import SchemaSnapshot
from app.statements import BASE_COLUMNS

S21 = {
    "id": "s21-ultra",
    "name": "Galaxy S21 Ultra",
    "brand": "Samsung",
    "category": "Phone",
    "price": 1199,
    "colors": ["Black"],
}


@pytest.fixture(autouse=True)
def _fresh(fresh_tables):
    yield


def _create(client: TestClient, **overrides):
    payload = {**S21, **overrides}
    response = client.post("/api/products", json=payload)
    assert response.status_code == 201
    return payload["id"]


# --- Health ---


def test_health_check(client: TestClient):
    """Both health paths ping the database and answer in plain text."""
    for path in ("/health", "/api/health"):
        response = client.get(path)
        assert response.status_code == 200
        assert response.text == "ok"


def test_health_check_reports_db_error(client: TestClient):
    with patch.object(Session, "execute", side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
        response = client.get("/health")
    assert response.status_code == 500
    assert response.text == "db error"


# --- Products ---


def test_create_and_read_product_example(client: TestClient):
    """POST then GET returns the hydrated product with defaults filled in."""
    response = client.post(
        "/api/products",
        json={"id": "s21-ultra", "name": "Galaxy S21 Ultra", "price": 1199, "colors": ["Black"]},
    )
    assert response.status_code == 201
    assert response.json() == {"ok": True, "id": "s21-ultra"}

    response = client.get("/api/products/s21-ultra")
    assert response.status_code == 200
    product = response.json()
    assert product["id"] == "s21-ultra"
    assert product["name"] == "Galaxy S21 Ultra"
    assert product["price"] == 1199
    assert product["stock"] == 0
    assert product["colors"] == ["Black"]
    assert product["features"] == []
    assert product["specs"] == {}
    assert product["tags"] == []
    assert product["images"] == []
    assert product["services"] == {}
    assert product["reviews"] == []
    assert product["active"] is True
    assert product["featured"] is False
    assert product["created_at"]


def test_create_product_requires_id_and_name(client: TestClient, db_session: Session):
    for payload in ({"name": "No id"}, {"id": "no-name"}, {"id": "  ", "name": "Blank id"}):
        response = client.post("/api/products", json=payload)
        assert response.status_code == 400
        assert response.json() == {"error": "id and name are required"}
    assert db_session.scalar(select(func.count()).select_from(Product)) == 0


def test_create_product_with_malformed_fields_falls_back_to_defaults(client: TestClient):
    """Wrongly typed fields are stored as their defaults; only id/name are enforced."""
    response = client.post(
        "/api/products",
        json={
            "id": "p1",
            "name": "Phone",
            "colors": "Black",
            "features": {"5G": True},
            "tags": 7,
            "specs": ["x"],
            "stock": "lots",
            "price": -5,
            "active": "no",
            "images": "https://img/1.jpg",
        },
    )
    assert response.status_code == 201

    product = client.get("/api/products/p1").json()
    assert product["colors"] == []
    assert product["features"] == []
    assert product["tags"] == []
    assert product["specs"] == {}
    assert product["stock"] == 0
    assert product["price"] == 0
    assert product["active"] is False
    assert product["images"] == []


def test_integral_price_is_returned_as_int(client: TestClient):
    _create(client)
    _create(client, id="budget", name="Budget", price=99.5)

    assert "1199.0" not in client.get("/api/products/s21-ultra").text
    assert isinstance(client.get("/api/products/s21-ultra").json()["price"], int)
    assert client.get("/api/products/budget").json()["price"] == 99.5


def test_create_product_is_idempotent(client: TestClient, db_session: Session):
    payload = {**S21, "images": ["https://img/1.jpg"], "services": {"Screen replacement": "299"}}
    for _ in range(2):
        assert client.post("/api/products", json=payload).status_code == 201

    assert db_session.scalar(select(func.count()).select_from(Product)) == 1
    assert db_session.scalar(select(func.count()).select_from(ProductImage)) == 1
    assert db_session.scalar(select(func.count()).select_from(ProductService)) == 1


def test_create_product_with_full_payload(client: TestClient):
    payload = {
        **S21,
        "features": ["5G", "NFC"],
        "specs": {"ram": "12GB", "battery_mah": 5000},
        "tags": ["flagship"],
        "active": False,
        "featured": True,
        "release_date": "2021-01-29T00:00:00.000Z",
        "warranty": "24 months",
        "notes": "Demo unit available",
        "images": ["https://img/1.jpg", {"url": " https://img/2.jpg "}, ""],
        "services": [{"k": "Screen replacement", "v": 299}, {"key": "Unlock", "value": "free"}],
    }
    _create(client, **payload)

    product = client.get("/api/products/s21-ultra").json()
    assert product["features"] == ["5G", "NFC"]
    assert product["specs"] == {"ram": "12GB", "battery_mah": 5000}
    assert product["tags"] == ["flagship"]
    assert product["active"] is False
    assert product["featured"] is True
    assert product["release"] == "2021-01-29"
    assert product["warranty"] == "24 months"
    assert product["notes"] == "Demo unit available"
    assert product["images"] == ["https://img/1.jpg", "https://img/2.jpg"]
    assert product["services"] == {"Screen replacement": 299, "Unlock": "free"}


def test_create_product_replaces_images(client: TestClient):
    _create(client, images=["https://img/a.jpg", "https://img/b.jpg"])
    _create(client, images=["https://img/c.jpg"])

    assert client.get("/api/products/s21-ultra").json()["images"] == ["https://img/c.jpg"]


def test_create_product_with_missing_optional_columns(client: TestClient):
    """Writes skip columns the probe did not find; reads still return defaults."""
    app.dependency_overrides[get_schema] = lambda: SchemaSnapshot(
        frozenset({"id", "created_at", *BASE_COLUMNS})
    )
    try:
        _create(client, tags=["ignored"], featured=True)
        product = client.get("/api/products/s21-ultra").json()
    finally:
        app.dependency_overrides.pop(get_schema, None)

    assert product["name"] == "Galaxy S21 Ultra"
    assert product["tags"] == []
    assert product["featured"] is False


def test_get_product_not_found(client: TestClient):
    response = client.get("/api/products/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"error": "not found"}


def test_list_products(client: TestClient):
    assert client.get("/api/products").json() == []

    _create(client)
    _create(client, id="pixel-8", name="Pixel 8", images=["https://img/p8.jpg"])

    response = client.get("/api/products")
    assert response.status_code == 200
    products = {product["id"]: product for product in response.json()}
    assert set(products) == {"s21-ultra", "pixel-8"}
    assert products["pixel-8"]["images"] == ["https://img/p8.jpg"]
    assert products["s21-ultra"]["reviews"] == []


def test_update_product(client: TestClient):
    _create(client)
    response = client.put(
        "/api/products/s21-ultra",
        json={"name": "Galaxy S21 Ultra 5G", "price": 999, "stock": 3, "colors": ["Silver"]},
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    product = client.get("/api/products/s21-ultra").json()
    assert product["name"] == "Galaxy S21 Ultra 5G"
    assert product["price"] == 999
    assert product["stock"] == 3
    assert product["colors"] == ["Silver"]
    assert product["brand"] == ""


def test_update_product_not_found(client: TestClient, db_session: Session):
    response = client.put("/api/products/ghost", json={"name": "Ghost"})
    assert response.status_code == 404
    assert response.json() == {"error": "not found"}
    assert db_session.scalar(select(func.count()).select_from(Product)) == 0


def test_update_product_requires_name(client: TestClient):
    _create(client)
    response = client.put("/api/products/s21-ultra", json={"price": 5})
    assert response.status_code == 400


def test_delete_product_cascades(client: TestClient, db_session: Session):
    _create(client, images=["https://img/1.jpg"], services={"Repair": "10"})
    client.post("/api/products/s21-ultra/reviews", json={"name": "Alice", "rating": 5})

    response = client.delete("/api/products/s21-ultra")
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    assert client.get("/api/products/s21-ultra").status_code == 404
    for model in (ProductImage, ProductService, ProductReview):
        assert db_session.scalar(select(func.count()).select_from(model)) == 0

    assert client.delete("/api/products/s21-ultra").status_code == 404


def test_store_error_returns_generic_500(client: TestClient):
    with patch("app.main.crud.list_products", side_effect=OperationalError("SELECT", {}, Exception("boom"))):
        response = client.get("/api/products")
    assert response.status_code == 500
    assert response.json() == {"error": "api error"}


# --- Images ---


def test_add_and_delete_image(client: TestClient):
    _create(client)
    response = client.post("/api/products/s21-ultra/images", json={"url": "https://img/1.jpg"})
    assert response.status_code == 201
    body = response.json()
    assert body["ok"] is True
    image_id = body["image_id"]

    assert client.get("/api/products/s21-ultra").json()["images"] == ["https://img/1.jpg"]

    response = client.delete(f"/api/products/s21-ultra/images/{image_id}")
    assert response.status_code == 200
    assert client.get("/api/products/s21-ultra").json()["images"] == []


def test_add_image_requires_url(client: TestClient):
    _create(client)
    response = client.post("/api/products/s21-ultra/images", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "url required"}


def test_delete_image_of_other_product_is_not_found(client: TestClient):
    _create(client)
    _create(client, id="pixel-8", name="Pixel 8")
    image_id = client.post(
        "/api/products/s21-ultra/images", json={"url": "https://img/1.jpg"}
    ).json()["image_id"]

    response = client.delete(f"/api/products/pixel-8/images/{image_id}")
    assert response.status_code == 404
    assert client.get("/api/products/s21-ultra").json()["images"] == ["https://img/1.jpg"]


# --- Services ---


def test_add_service_coerces_numeric_values(client: TestClient):
    _create(client)
    response = client.post(
        "/api/products/s21-ultra/services", json={"k": "Screen replacement", "v": "299"}
    )
    assert response.status_code == 201
    assert isinstance(response.json()["service_id"], int)

    product = client.get("/api/products/s21-ultra").json()
    assert product["services"] == {"Screen replacement": 299}


def test_add_service_requires_k_and_v(client: TestClient):
    _create(client)
    for payload in ({"k": "Repair"}, {"v": "10"}, {"k": " ", "v": "10"}):
        response = client.post("/api/products/s21-ultra/services", json=payload)
        assert response.status_code == 400
        assert response.json() == {"error": "k and v required"}


def test_update_and_delete_service(client: TestClient):
    _create(client)
    service_id = client.post(
        "/api/products/s21-ultra/services", json={"k": "Repair", "v": "10"}
    ).json()["service_id"]

    response = client.put(
        f"/api/products/s21-ultra/services/{service_id}", json={"k": "Repair", "v": "12.5"}
    )
    assert response.status_code == 200
    assert client.get("/api/products/s21-ultra").json()["services"] == {"Repair": 12.5}

    assert client.put(
        f"/api/products/other/services/{service_id}", json={"k": "x", "v": "y"}
    ).status_code == 404
    assert client.delete(f"/api/products/other/services/{service_id}").status_code == 404

    response = client.delete(f"/api/products/s21-ultra/services/{service_id}")
    assert response.status_code == 200
    assert client.get("/api/products/s21-ultra").json()["services"] == {}


# --- Reviews ---


def test_add_and_delete_review(client: TestClient):
    _create(client)
    response = client.post(
        "/api/products/s21-ultra/reviews",
        json={"name": "Alice", "rating": 5, "comment": "Incredible screen"},
    )
    assert response.status_code == 201
    review_id = response.json()["review_id"]

    reviews = client.get("/api/products/s21-ultra").json()["reviews"]
    assert len(reviews) == 1
    assert reviews[0]["id"] == review_id
    assert reviews[0]["name"] == "Alice"
    assert reviews[0]["rating"] == 5
    assert reviews[0]["comment"] == "Incredible screen"
    assert isinstance(reviews[0]["created_ms"], int)

    assert client.delete(f"/api/products/pixel-8/reviews/{review_id}").status_code == 404
    assert client.delete(f"/api/products/s21-ultra/reviews/{review_id}").status_code == 200
    assert client.get("/api/products/s21-ultra").json()["reviews"] == []


def test_add_review_requires_name_and_nonzero_rating(client: TestClient):
    _create(client)
    for payload in ({"rating": 5}, {"name": "Bob"}, {"name": "Bob", "rating": 0}):
        response = client.post("/api/products/s21-ultra/reviews", json=payload)
        assert response.status_code == 400
        assert response.json() == {"error": "name and rating required"}


def test_reviews_are_newest_first(client: TestClient):
    _create(client)
    first = client.post("/api/products/s21-ultra/reviews", json={"name": "A", "rating": 3}).json()
    second = client.post("/api/products/s21-ultra/reviews", json={"name": "B", "rating": 4}).json()

    reviews = client.get("/api/products/s21-ultra").json()["reviews"]
    assert [review["id"] for review in reviews] == [second["review_id"], first["review_id"]]


def test_non_numeric_child_ids_are_not_found(client: TestClient):
    _create(client)
    for method, path in (
        ("delete", "/api/products/s21-ultra/images/abc"),
        ("delete", "/api/products/s21-ultra/services/abc"),
        ("delete", "/api/products/s21-ultra/reviews/abc"),
    ):
        response = getattr(client, method)(path)
        assert response.status_code == 404
        assert response.json() == {"error": "not found"}

    response = client.put("/api/products/s21-ultra/services/abc", json={"k": "x", "v": "y"})
    assert response.status_code == 404
