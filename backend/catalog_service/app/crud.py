# backend/catalog_service/app/crud.py
"""
Product aggregate reads and writes.

Functions here only execute statements on the given session; committing or
rolling back is left to the caller so that a product write and its child
collection replacements land in one transaction.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session

from .models import Product, ProductImage, ProductReview, ProductService
from .normalize import (
    format_date,
    maybe_number,
    normalize_image_urls,
    normalize_product,
    normalize_review,
    normalize_service_entries,
    service_text,
    to_bool,
    to_int,
    to_json_text,
    to_number,
)
from .schema_probe import SchemaSnapshot
from .statements import build_select, build_update, build_upsert

logger = logging.getLogger(__name__)


class ProductValidationError(ValueError):
    pass


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _required_text(payload: Mapping[str, Any], field: str) -> str:
    value = _optional_text(payload.get(field))
    if value is None:
        raise ProductValidationError(f"{field} is required")
    return value


def product_values(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Storable values for every product column, keyed by logical name."""
    release = payload.get("release")
    if release is None:
        release = payload.get("release_date")
    return {
        "name": _optional_text(payload.get("name")),
        "brand": _optional_text(payload.get("brand")),
        "category": _optional_text(payload.get("category")),
        "price": max(to_number(payload.get("price")), 0.0),
        "stock": to_int(payload.get("stock")),
        "colors": to_json_text(payload.get("colors"), []),
        "features": to_json_text(payload.get("features"), []),
        "specs": to_json_text(payload.get("specs"), {}),
        "tags": to_json_text(payload.get("tags"), []),
        "active": to_bool(payload.get("active"), True),
        "featured": to_bool(payload.get("featured"), False),
        "release": format_date(release) or None,
        "warranty": _optional_text(payload.get("warranty")),
        "notes": _optional_text(payload.get("notes")),
    }


# --- Read path ---


def fetch_product_row(db: Session, schema: SchemaSnapshot, product_id: str):
    return db.execute(build_select(schema, product_id)).mappings().first()


def hydrate_products(db: Session, rows) -> List[Dict[str, Any]]:
    """Normalize product rows and attach images, services and reviews.

    Child rows are loaded with one query per child table for all products.
    """
    products = [normalize_product(row) for row in rows]
    if not products:
        return []
    ids = [product["id"] for product in products]

    images = defaultdict(list)
    image_rows = db.execute(
        select(ProductImage.product_id, ProductImage.url)
        .where(ProductImage.product_id.in_(ids))
        .order_by(ProductImage.id)
    )
    for product_id, url in image_rows:
        images[product_id].append(url)

    services = defaultdict(dict)
    service_rows = db.execute(
        select(ProductService.product_id, ProductService.k, ProductService.v)
        .where(ProductService.product_id.in_(ids))
        .order_by(ProductService.id)
    )
    for product_id, key, value in service_rows:
        if key:
            # later rows overwrite earlier ones with the same key
            services[product_id][key] = maybe_number(value if value is not None else "")

    reviews = defaultdict(list)
    review_rows = db.execute(
        select(
            ProductReview.id,
            ProductReview.product_id,
            ProductReview.name,
            ProductReview.rating,
            ProductReview.comment,
            ProductReview.created_at,
        )
        .where(ProductReview.product_id.in_(ids))
        .order_by(ProductReview.created_at.desc(), ProductReview.id.desc())
    ).mappings()
    for review in review_rows:
        reviews[review["product_id"]].append(normalize_review(review))

    for product in products:
        product_id = product["id"]
        product["images"] = images.get(product_id, [])
        product["services"] = services.get(product_id, {})
        product["reviews"] = reviews.get(product_id, [])
    return products


def hydrate_product(db: Session, row) -> Dict[str, Any]:
    return hydrate_products(db, [row])[0]


def list_products(db: Session, schema: SchemaSnapshot) -> List[Dict[str, Any]]:
    rows = db.execute(build_select(schema)).mappings().all()
    return hydrate_products(db, rows)


def get_product(db: Session, schema: SchemaSnapshot, product_id: str) -> Optional[Dict[str, Any]]:
    row = fetch_product_row(db, schema, product_id)
    if row is None:
        return None
    return hydrate_product(db, row)


# --- Write path ---


def _sync_children(db: Session, product_id: str, payload: Mapping[str, Any]):
    if payload.get("images") is not None:
        replace_images(db, product_id, payload["images"])
    if payload.get("services") is not None:
        replace_services(db, product_id, payload["services"])


def upsert_product(db: Session, schema: SchemaSnapshot, payload: Mapping[str, Any]) -> str:
    """Insert or fully overwrite a product, then replace the given child collections."""
    product_id = _required_text(payload, "id")
    _required_text(payload, "name")

    values = product_values(payload)
    dialect_name = db.get_bind().dialect.name
    db.execute(build_upsert(schema, product_id, values, dialect_name))
    _sync_children(db, product_id, payload)
    logger.info(f"Catalog Service: Upserted product '{product_id}'.")
    return product_id


def update_product(
    db: Session, schema: SchemaSnapshot, product_id: str, payload: Mapping[str, Any]
) -> bool:
    """Overwrite an existing product. Returns False when no such product exists."""
    _required_text(payload, "name")

    values = product_values(payload)
    result = db.execute(build_update(schema, product_id, values))
    if result.rowcount == 0:
        return False
    _sync_children(db, product_id, payload)
    logger.info(f"Catalog Service: Updated product '{product_id}'.")
    return True


def delete_product(db: Session, product_id: str) -> bool:
    # images, services and reviews go with it through ON DELETE CASCADE
    result = db.execute(delete(Product).where(Product.id == product_id))
    return result.rowcount > 0


# --- Child collections ---


def replace_images(db: Session, product_id: str, images: Any) -> List[str]:
    urls = normalize_image_urls(images)
    db.execute(delete(ProductImage).where(ProductImage.product_id == product_id))
    if urls:
        db.execute(
            insert(ProductImage),
            [{"product_id": product_id, "url": url} for url in urls],
        )
    return urls


def replace_services(db: Session, product_id: str, services: Any):
    entries = normalize_service_entries(services)
    db.execute(delete(ProductService).where(ProductService.product_id == product_id))
    if entries:
        db.execute(
            insert(ProductService),
            [{"product_id": product_id, "k": k, "v": v} for k, v in entries],
        )
    return entries


def add_image(db: Session, product_id: str, url: str) -> int:
    image = ProductImage(product_id=product_id, url=url)
    db.add(image)
    db.flush()
    return image.id


def delete_image(db: Session, product_id: str, image_id: int) -> bool:
    result = db.execute(
        delete(ProductImage).where(
            ProductImage.id == image_id, ProductImage.product_id == product_id
        )
    )
    return result.rowcount > 0


def add_service(db: Session, product_id: str, k: str, v: Any) -> int:
    service = ProductService(product_id=product_id, k=k, v=service_text(v))
    db.add(service)
    db.flush()
    return service.id


def update_service(
    db: Session, product_id: str, service_id: int, k: Optional[str], v: Any
) -> bool:
    result = db.execute(
        update(ProductService)
        .where(ProductService.id == service_id, ProductService.product_id == product_id)
        .values(k=_optional_text(k), v=None if v is None else service_text(v))
    )
    return result.rowcount > 0


def delete_service(db: Session, product_id: str, service_id: int) -> bool:
    result = db.execute(
        delete(ProductService).where(
            ProductService.id == service_id, ProductService.product_id == product_id
        )
    )
    return result.rowcount > 0


# --- Reviews ---


def add_review(
    db: Session, product_id: str, name: str, rating: Any, comment: Optional[str] = None
) -> int:
    review = ProductReview(
        product_id=product_id,
        name=name,
        rating=to_number(rating),
        comment=comment or None,
    )
    db.add(review)
    db.flush()
    return review.id


def delete_review(db: Session, product_id: str, review_id: int) -> bool:
    result = db.execute(
        delete(ProductReview).where(
            ProductReview.id == review_id, ProductReview.product_id == product_id
        )
    )
    return result.rowcount > 0
