from sqlalchemy import String, ForeignKey, DECIMAL, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
from backend.app.core.base import Base


class SalesCommission(Base):
    """Commission owed to an affiliate for one product line of a completed order."""
    __tablename__ = 'sales_commission'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    affiliate_code: Mapped[str] = mapped_column(String(20))
    order_id: Mapped[int] = mapped_column(ForeignKey('orders.id'))
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id'))
    sale_amount: Mapped[float] = mapped_column(DECIMAL(12, 2))
    commission_amount: Mapped[float] = mapped_column(DECIMAL(12, 2))
    # pending, completed, cancelled
    status: Mapped[str] = mapped_column(String(20), default='pending')
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        UniqueConstraint('order_id', 'product_id', 'affiliate_code', name='uq_sales_commission_order_product_code'),
        Index('ix_sales_commission_affiliate_status', 'affiliate_code', 'status'),
        Index('ix_sales_commission_created_at', 'created_at'),
    )


class ReferralCommission(Base):
    """Flat commission owed to a referer when someone they recruited becomes an affiliate."""
    __tablename__ = 'referals_commission'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    referer_code: Mapped[str] = mapped_column(String(20))
    new_affiliate_code: Mapped[str] = mapped_column(String(20), unique=True)
    amount: Mapped[float] = mapped_column(DECIMAL(12, 2))
    # pending, completed, cancelled
    status: Mapped[str] = mapped_column(String(20), default='pending')
    # Registration payment that triggered the commission
    payment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('ix_referals_commission_referer_status', 'referer_code', 'status'),
    )
