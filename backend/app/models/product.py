from sqlalchemy import String, Text, ForeignKey, DECIMAL, Integer, Boolean, DateTime, Index, JSON, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional, List
from backend.app.core.base import Base


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    price: Mapped[Optional[float]] = mapped_column(DECIMAL(12, 2), nullable=True)
    # List price before discount; used when price is empty
    originalprice: Mapped[Optional[float]] = mapped_column(DECIMAL(12, 2), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    stock_number: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Already-hosted image URLs, first one is the cover
    product_images: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('ix_products_category', 'category'),
        Index('ix_products_is_active', 'is_active'),
    )


class ProductDetails(Base):
    __tablename__ = 'details'

    product_id: Mapped[int] = mapped_column(ForeignKey('products.id', ondelete='CASCADE'), primary_key=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    features: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    specifications: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


class ProductVariation(Base):
    __tablename__ = 'product_variations'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id', ondelete='CASCADE'))
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    price_adjustment: Mapped[float] = mapped_column(DECIMAL(12, 2), default=0)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('ix_product_variations_product_id', 'product_id'),
    )


class Review(Base):
    __tablename__ = 'reviews'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id', ondelete='CASCADE'))
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey('user_profiles.id'), nullable=True)
    rating: Mapped[int] = mapped_column(Integer)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        CheckConstraint('rating BETWEEN 1 AND 5', name='rating_range'),
        Index('ix_reviews_product_id', 'product_id'),
    )
