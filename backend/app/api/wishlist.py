from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_current_user, handle_service_error
from backend.app.models.user import UserProfile
from backend.app.schemas import WishlistItemAdd
from backend.app.services.wishlist import WishlistService, WishlistServiceError

router = APIRouter()


@router.get("")
async def get_wishlist(
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await WishlistService(session).fetch(user.id)


@router.post("/items")
async def add_to_wishlist(
    data: WishlistItemAdd,
    response: Response,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """201 for a new entry, 200 when the product was already saved."""
    try:
        result = await WishlistService(session).add_to_wishlist(user.id, data.product_id)
    except WishlistServiceError as e:
        await handle_service_error(session, e, "Add to wishlist failed", product_id=data.product_id)
    response.status_code = 201 if result["created"] else 200
    return result


@router.get("/items/{product_id}")
async def is_in_wishlist(
    product_id: int,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return {"product_id": product_id, "in_wishlist": await WishlistService(session).is_in_wishlist(user.id, product_id)}


@router.delete("/items/{product_id}")
async def remove_from_wishlist(
    product_id: int,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await WishlistService(session).remove(user.id, product_id)
    return {"status": "ok"}


@router.delete("")
async def clear_wishlist(
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await WishlistService(session).clear(user.id)
    return {"status": "ok"}
