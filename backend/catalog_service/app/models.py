# backend/catalog_service/app/models.py

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .db import Base


class Product(Base):
    """Base columns of the products table.

    The optional columns (specs, tags, active, featured, release/release_date,
    warranty, notes) are added at runtime by the schema probe and are only
    read and written through ``app.statements``.
    """

    __tablename__ = "products"

    id = Column(String(128), primary_key=True)
    name = Column(String(255), nullable=False)
    brand = Column(String(255), nullable=True)
    category = Column(String(255), nullable=True)
    price = Column(Numeric(10, 2), server_default="0")
    stock = Column(Integer, server_default="0")
    colors = Column(JSON, nullable=True)
    features = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    images = relationship(
        "ProductImage",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductImage.id",
    )
    services = relationship(
        "ProductService",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductService.id",
    )
    reviews = relationship(
        "ProductReview",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Product(id='{self.id}', name='{self.name}', stock={self.stock})>"


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(
        String(128),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url = Column(Text, nullable=False)

    product = relationship("Product", back_populates="images")

    def __repr__(self):
        return f"<ProductImage(id={self.id}, product_id='{self.product_id}', url='{self.url[:30]}...')>"


class ProductService(Base):
    __tablename__ = "product_services"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(
        String(128),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    k = Column(String(255), nullable=True)
    v = Column(String(255), nullable=True)

    product = relationship("Product", back_populates="services")

    def __repr__(self):
        return f"<ProductService(id={self.id}, product_id='{self.product_id}', k='{self.k}', v='{self.v}')>"


class ProductReview(Base):
    __tablename__ = "product_reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(
        String(128),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    rating = Column(Float, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    product = relationship("Product", back_populates="reviews")

    def __repr__(self):
        return f"<ProductReview(id={self.id}, product_id='{self.product_id}', rating={self.rating})>"
