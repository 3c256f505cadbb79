from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from .db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False, default=0)
    discount = Column(Float, nullable=False, default=0)    # percent, 0..100
    display_order = Column(Integer, nullable=False, default=0)

    # Images
    image_main = Column(Text, nullable=True)               # always images[0].url
    image_folder = Column(String(64), nullable=False)      # storage key prefix
    images = relationship(
        "ProductImage",
        order_by="ProductImage.position",
        cascade="all, delete-orphan",
        back_populates="product",
        lazy="selectin",
    )

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    @property
    def image_urls(self):
        return [img.url for img in self.images]


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    url = Column(Text, nullable=False)
    storage_key = Column(String(512), nullable=False)   # never derived from url

    product = relationship("Product", back_populates="images")


class Visit(Base):
    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    visited_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
