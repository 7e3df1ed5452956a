from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_current_user, handle_service_error
from backend.app.models.user import UserProfile
from backend.app.schemas import CartItemAdd, CartQuantityUpdate
from backend.app.services.cart import CartService, CartServiceError

router = APIRouter()


@router.get("")
async def get_cart(
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await CartService(session).fetch_cart(user.id)


@router.post("/items")
async def add_to_cart(
    data: CartItemAdd,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await CartService(session).add_to_cart(user.id, data.product_id, data.quantity)
    except CartServiceError as e:
        await handle_service_error(session, e, "Add to cart failed", product_id=data.product_id)


@router.put("/items/{product_id}")
async def update_cart_item(
    product_id: int,
    data: CartQuantityUpdate,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await CartService(session).update_quantity(user.id, product_id, data.quantity)
    except CartServiceError as e:
        await handle_service_error(session, e, "Cart update failed", product_id=product_id)


@router.delete("/items/{product_id}")
async def remove_from_cart(
    product_id: int,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await CartService(session).remove_from_cart(user.id, product_id)
    return {"status": "ok"}


@router.delete("")
async def clear_cart(
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await CartService(session).clear_cart(user.id)
    return {"status": "ok"}
