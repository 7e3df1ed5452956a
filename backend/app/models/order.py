from sqlalchemy import String, ForeignKey, DECIMAL, Integer, Boolean, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
from backend.app.core.base import Base


class Order(Base):
    __tablename__ = 'orders'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('user_profiles.id'))
    total_amount: Mapped[float] = mapped_column(DECIMAL(12, 2))
    # pending, confirmed, processing, shipped, completed, cancelled
    status: Mapped[str] = mapped_column(String(20), default='pending')
    payment_completion: Mapped[bool] = mapped_column(Boolean, default=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index('ix_orders_user_id', 'user_id'),
        Index('ix_orders_status_created', 'status', 'created_at'),
    )


class OrderItem(Base):
    """One purchased line. Name, sku, color, size and unit price are snapshots at order time."""
    __tablename__ = 'order_items'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey('orders.id', ondelete='CASCADE'))
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id'))
    variation_id: Mapped[Optional[int]] = mapped_column(ForeignKey('product_variations.id'), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    product_sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer)
    price: Mapped[float] = mapped_column(DECIMAL(12, 2))
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    affiliate_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    commission_earned: Mapped[float] = mapped_column(DECIMAL(12, 2), default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('ix_order_items_order_id', 'order_id'),
        Index('ix_order_items_affiliate_code', 'affiliate_code'),
    )
