from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_current_user, handle_service_error
from backend.app.models.user import UserProfile
from backend.app.schemas import UserUpdate
from backend.app.services.affiliates import AffiliateService
from backend.app.services.users import UserService, UserServiceError, user_to_dict

router = APIRouter()


@router.get("/me")
async def get_me(
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Current profile plus affiliate status (what the account page needs)."""
    data = user_to_dict(user)
    data["affiliate"] = await AffiliateService(session).get_affiliate_status(user)
    return data


@router.put("/me")
async def update_me(
    data: UserUpdate,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        updated = await UserService(session).update_profile(user.id, name=data.name, phone=data.phone)
    except UserServiceError as e:
        await handle_service_error(session, e, "Profile update failed", user_id=user.id)
    return user_to_dict(updated)
