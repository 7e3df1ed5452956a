from sqlalchemy import String, DECIMAL, DateTime, Index, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
from backend.app.core.base import Base


class Withdrawal(Base):
    """Affiliate request to pay part of the balance out to a mobile-money number."""
    __tablename__ = 'withdrawals'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    affiliate_code: Mapped[str] = mapped_column(String(20))
    amount: Mapped[float] = mapped_column(DECIMAL(12, 2))
    phone_number: Mapped[str] = mapped_column(String(20))
    # pending, processing, completed, failed, cancelled
    status: Mapped[str] = mapped_column(String(20), default='pending')
    reason_of_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    processed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index('ix_withdrawals_affiliate_status', 'affiliate_code', 'status'),
    )
