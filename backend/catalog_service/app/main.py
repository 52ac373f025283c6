# backend/catalog_service/app/main.py

import logging
import os
import sys
import time
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud
from .db import Base, engine, get_db
from .schema_probe import SchemaProbe, SchemaSnapshot
from .schemas import (
    ImageCreate,
    ProductPayload,
    ProductResponse,
    ReviewCreate,
    ServiceCreate,
    ServiceUpdate,
)

# --- Standard Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Suppress noisy logs from third-party libraries for cleaner output
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.INFO)

HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "3000"))

schema_probe = SchemaProbe(engine)

# --- FastAPI Application Setup ---
app = FastAPI(
    title="Catalog Service API",
    description="Phone shop catalog: products with images, services and reviews.",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_schema() -> SchemaSnapshot:
    return schema_probe.snapshot


# --- Error responses ---
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Catalog Service: Invalid payload for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"error": "invalid payload"}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Catalog Service: Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "server error"},
    )


def _store_failure(db: Session, action: str, e: Exception) -> HTTPException:
    db.rollback()
    logger.error(f"Catalog Service: {action} failed: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="api error"
    )


def _not_found(what: str) -> HTTPException:
    logger.warning(f"Catalog Service: {what} not found.")
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")


def _child_id(raw: str, what: str) -> int:
    # ids are integers; anything else cannot match a row
    try:
        return int(raw)
    except ValueError:
        raise _not_found(what) from None


# --- FastAPI Event Handlers ---
@app.on_event("startup")
async def startup_event():
    max_retries = 10
    retry_delay_seconds = 5
    for i in range(max_retries):
        try:
            logger.info(
                f"Catalog Service: Attempting to connect to the database and create tables (attempt {i+1}/{max_retries})..."
            )
            Base.metadata.create_all(bind=engine)
            logger.info(
                "Catalog Service: Successfully connected to the database and ensured tables exist."
            )
            break
        except OperationalError as e:
            logger.warning(f"Catalog Service: Failed to connect to the database: {e}")
            if i < max_retries - 1:
                logger.info(
                    f"Catalog Service: Retrying in {retry_delay_seconds} seconds..."
                )
                time.sleep(retry_delay_seconds)
            else:
                logger.critical(
                    f"Catalog Service: Failed to connect to the database after {max_retries} attempts. Exiting application."
                )
                sys.exit(1)
        except Exception as e:
            logger.critical(
                f"Catalog Service: An unexpected error occurred during database startup: {e}",
                exc_info=True,
            )
            sys.exit(1)

    schema_probe.refresh()
    schema_probe.ensure_columns()


# --- Health Check Endpoints ---
@app.get("/health", response_class=PlainTextResponse, summary="Liveness and database ping")
@app.get("/api/health", response_class=PlainTextResponse, include_in_schema=False)
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Catalog Service: Database ping failed: {e}", exc_info=True)
        return PlainTextResponse(
            "db error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    return PlainTextResponse("ok")


# --- Products ---
@app.get(
    "/api/products",
    response_model=List[ProductResponse],
    summary="List all products, newest first",
)
def list_products(
    db: Session = Depends(get_db), schema: SchemaSnapshot = Depends(get_schema)
):
    logger.info("Catalog Service: Listing products.")
    try:
        products = crud.list_products(db, schema)
    except Exception as e:
        raise _store_failure(db, "GET /api/products", e)
    logger.info(f"Catalog Service: Retrieved {len(products)} products.")
    return products


@app.get(
    "/api/products/{product_id}",
    response_model=ProductResponse,
    summary="Retrieve a single product with images, services and reviews",
)
def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    schema: SchemaSnapshot = Depends(get_schema),
):
    logger.info(f"Catalog Service: Fetching product with ID: {product_id}")
    try:
        product = crud.get_product(db, schema, product_id)
    except Exception as e:
        raise _store_failure(db, f"GET /api/products/{product_id}", e)
    if product is None:
        raise _not_found(f"Product {product_id}")
    return product


@app.post(
    "/api/products",
    status_code=status.HTTP_201_CREATED,
    summary="Create or overwrite a product",
)
def upsert_product(
    payload: ProductPayload,
    db: Session = Depends(get_db),
    schema: SchemaSnapshot = Depends(get_schema),
):
    data = payload.model_dump(exclude_none=True)
    logger.info(f"Catalog Service: Upserting product: {data.get('id')}")
    try:
        product_id = crud.upsert_product(db, schema, data)
        db.commit()
    except crud.ProductValidationError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="id and name are required"
        )
    except Exception as e:
        raise _store_failure(db, "POST /api/products", e)
    return {"ok": True, "id": product_id}


@app.put("/api/products/{product_id}", summary="Update an existing product")
def update_product(
    product_id: str,
    payload: ProductPayload,
    db: Session = Depends(get_db),
    schema: SchemaSnapshot = Depends(get_schema),
):
    data = payload.model_dump(exclude_none=True)
    logger.info(f"Catalog Service: Updating product with ID: {product_id}")
    try:
        updated = crud.update_product(db, schema, product_id, data)
        db.commit()
    except crud.ProductValidationError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="name is required"
        )
    except Exception as e:
        raise _store_failure(db, f"PUT /api/products/{product_id}", e)
    if not updated:
        raise _not_found(f"Product {product_id}")
    return {"ok": True}


@app.delete("/api/products/{product_id}", summary="Delete a product and its children")
def delete_product(product_id: str, db: Session = Depends(get_db)):
    logger.info(f"Catalog Service: Attempting to delete product with ID: {product_id}")
    try:
        deleted = crud.delete_product(db, product_id)
        db.commit()
    except Exception as e:
        raise _store_failure(db, f"DELETE /api/products/{product_id}", e)
    if not deleted:
        raise _not_found(f"Product {product_id}")
    return {"ok": True}


# --- Images ---
@app.post(
    "/api/products/{product_id}/images",
    status_code=status.HTTP_201_CREATED,
    summary="Append one image to a product",
)
def add_image(product_id: str, payload: ImageCreate, db: Session = Depends(get_db)):
    url = (payload.url or "").strip()
    if not url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="url required")
    try:
        image_id = crud.add_image(db, product_id, url)
        db.commit()
    except Exception as e:
        raise _store_failure(db, f"POST /api/products/{product_id}/images", e)
    logger.info(f"Catalog Service: Added image {image_id} to product {product_id}.")
    return {"ok": True, "image_id": image_id}


@app.delete("/api/products/{product_id}/images/{image_id}", summary="Delete one image")
def delete_image(product_id: str, image_id: str, db: Session = Depends(get_db)):
    what = f"Image {image_id} of product {product_id}"
    row_id = _child_id(image_id, what)
    try:
        deleted = crud.delete_image(db, product_id, row_id)
        db.commit()
    except Exception as e:
        raise _store_failure(db, f"DELETE /api/products/{product_id}/images/{image_id}", e)
    if not deleted:
        raise _not_found(what)
    return {"ok": True}


# --- Services ---
@app.post(
    "/api/products/{product_id}/services",
    status_code=status.HTTP_201_CREATED,
    summary="Append one service entry to a product",
)
def add_service(product_id: str, payload: ServiceCreate, db: Session = Depends(get_db)):
    key = (payload.k or "").strip()
    if not key or payload.v is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="k and v required"
        )
    try:
        service_id = crud.add_service(db, product_id, key, payload.v)
        db.commit()
    except Exception as e:
        raise _store_failure(db, f"POST /api/products/{product_id}/services", e)
    logger.info(f"Catalog Service: Added service {service_id} to product {product_id}.")
    return {"ok": True, "service_id": service_id}


@app.put("/api/products/{product_id}/services/{service_id}", summary="Update one service entry")
def update_service(
    product_id: str,
    service_id: str,
    payload: ServiceUpdate,
    db: Session = Depends(get_db),
):
    what = f"Service {service_id} of product {product_id}"
    row_id = _child_id(service_id, what)
    try:
        updated = crud.update_service(db, product_id, row_id, payload.k, payload.v)
        db.commit()
    except Exception as e:
        raise _store_failure(db, f"PUT /api/products/{product_id}/services/{service_id}", e)
    if not updated:
        raise _not_found(what)
    return {"ok": True}


@app.delete("/api/products/{product_id}/services/{service_id}", summary="Delete one service entry")
def delete_service(product_id: str, service_id: str, db: Session = Depends(get_db)):
    what = f"Service {service_id} of product {product_id}"
    row_id = _child_id(service_id, what)
    try:
        deleted = crud.delete_service(db, product_id, row_id)
        db.commit()
    except Exception as e:
        raise _store_failure(db, f"DELETE /api/products/{product_id}/services/{service_id}", e)
    if not deleted:
        raise _not_found(what)
    return {"ok": True}


# --- Reviews ---
@app.post(
    "/api/products/{product_id}/reviews",
    status_code=status.HTTP_201_CREATED,
    summary="Add a review to a product",
)
def add_review(product_id: str, payload: ReviewCreate, db: Session = Depends(get_db)):
    name = (payload.name or "").strip()
    if not name or not payload.rating:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="name and rating required"
        )
    try:
        review_id = crud.add_review(db, product_id, name, payload.rating, payload.comment)
        db.commit()
    except Exception as e:
        raise _store_failure(db, f"POST /api/products/{product_id}/reviews", e)
    logger.info(f"Catalog Service: Added review {review_id} to product {product_id}.")
    return {"ok": True, "review_id": review_id}


@app.delete("/api/products/{product_id}/reviews/{review_id}", summary="Delete one review")
def delete_review(product_id: str, review_id: str, db: Session = Depends(get_db)):
    what = f"Review {review_id} of product {product_id}"
    row_id = _child_id(review_id, what)
    try:
        deleted = crud.delete_review(db, product_id, row_id)
        db.commit()
    except Exception as e:
        raise _store_failure(db, f"DELETE /api/products/{product_id}/reviews/{review_id}", e)
    if not deleted:
        raise _not_found(what)
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=HOST, port=PORT, log_level="info")
