from sqlalchemy import String, ForeignKey, DECIMAL, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
from backend.app.core.base import Base


class RegistrationPayment(Base):
    """Affiliate join fee. Completing it activates the affiliate."""
    __tablename__ = 'registration_payment'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('user_profiles.id'))
    amount: Mapped[float] = mapped_column(DECIMAL(12, 2))
    # pending, completed, failed
    status: Mapped[str] = mapped_column(String(20), default='pending')
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    referer_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_registration_payment_user_id', 'user_id'),
        Index('ix_registration_payment_status', 'status'),
    )
