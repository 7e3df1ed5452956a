from sqlalchemy import String, DateTime, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
from backend.app.core.base import Base


class UserProfile(Base):
    """Local profile of a user authenticated by the external auth service."""
    __tablename__ = 'user_profiles'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Subject id from the access token
    auth_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    is_affiliate: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('ix_user_profiles_is_affiliate', 'is_affiliate'),
    )
