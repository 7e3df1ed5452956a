"""User profile service."""
from typing import Optional, Dict, Any, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.models.user import UserProfile

logger = get_logger(__name__)


class UserServiceError(ServiceError):
    """Base exception for user service errors."""


class UserNotFoundError(UserServiceError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found", 404)


def user_to_dict(user: UserProfile) -> Dict[str, Any]:
    return {
        "id": user.id,
        "auth_id": user.auth_id,
        "name": user.name,
        "phone": user.phone,
        "is_admin": bool(user.is_admin),
        "is_affiliate": bool(user.is_affiliate),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


class UserService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_auth_id(self, auth_id: str) -> Optional[UserProfile]:
        result = await self.session.execute(
            select(UserProfile).where(UserProfile.auth_id == auth_id)
        )
        return result.scalar_one_or_none()

    async def get_user(self, user_id: int) -> UserProfile:
        user = await self.session.get(UserProfile, user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return user

    async def get_or_create_profile(
        self,
        auth_id: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> UserProfile:
        """Return the profile for an auth id, creating it the first time the user is seen."""
        user = await self.get_by_auth_id(auth_id)
        if user:
            return user
        user = UserProfile(auth_id=auth_id, name=name, phone=phone)
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        logger.info("User profile created", user_id=user.id)
        return user

    async def update_profile(
        self,
        user_id: int,
        name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> UserProfile:
        user = await self.get_user(user_id)
        if name is not None:
            user.name = name.strip() or None
        if phone is not None:
            user.phone = phone.strip() or None
        await self.session.commit()
        await self.session.refresh(user)
        return user

    @staticmethod
    def is_admin(user: Optional[UserProfile]) -> bool:
        return bool(user and user.is_admin)

    async def set_admin(self, user_id: int, is_admin: bool = True) -> UserProfile:
        user = await self.get_user(user_id)
        user.is_admin = is_admin
        await self.session.commit()
        logger.info("Admin flag changed", user_id=user_id, is_admin=is_admin)
        return user

    async def list_users(self) -> List[Dict[str, Any]]:
        """All users ordered by id (admin users table)."""
        result = await self.session.execute(select(UserProfile).order_by(UserProfile.id))
        return [
            {
                "id": u.id,
                "name": u.name,
                "auth_id": u.auth_id,
                "is_admin": bool(u.is_admin),
                "is_affiliate": bool(u.is_affiliate),
            }
            for u in result.scalars().all()
        ]

    async def get_names(self, user_ids) -> Dict[int, Optional[str]]:
        """Map user id -> name for a batch of ids (one query)."""
        ids = {uid for uid in user_ids if uid is not None}
        if not ids:
            return {}
        result = await self.session.execute(
            select(UserProfile.id, UserProfile.name).where(UserProfile.id.in_(ids))
        )
        return {row.id: row.name for row in result.all()}
