from sqlalchemy import String, ForeignKey, DECIMAL, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
from backend.app.core.base import Base


class AffiliateProfile(Base):
    """
    Affiliate seller account.

    The money columns are running aggregates of the commission and
    withdrawal ledgers: balance == total_earnings - total_withdrawals and
    total_earnings == referals_earnings + commission_earnings.
    """
    __tablename__ = 'affiliate_profiles'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('user_profiles.id'), unique=True)
    affiliate_code: Mapped[str] = mapped_column(String(20), unique=True)

    balance: Mapped[float] = mapped_column(DECIMAL(12, 2), default=0)
    total_earnings: Mapped[float] = mapped_column(DECIMAL(12, 2), default=0)
    total_withdrawals: Mapped[float] = mapped_column(DECIMAL(12, 2), default=0)
    referals_earnings: Mapped[float] = mapped_column(DECIMAL(12, 2), default=0)
    commission_earnings: Mapped[float] = mapped_column(DECIMAL(12, 2), default=0)

    # Affiliate code of whoever recruited this affiliate
    referer: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        Index('ix_affiliate_profiles_referer', 'referer'),
    )
