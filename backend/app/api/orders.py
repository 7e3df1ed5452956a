from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_cache, get_current_user, handle_service_error
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.models.user import UserProfile
from backend.app.schemas import OrderCreate, AvailabilityCheck
from backend.app.services.cache import CacheService
from backend.app.services.orders import OrderService

router = APIRouter()
logger = get_logger(__name__)


@router.post("", status_code=201)
async def create_order(
    data: OrderCreate,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Place an order. Prices come from the catalog, never from the client."""
    try:
        order = await OrderService(session).create_secure_order(
            user_id=user.id,
            phone_number=data.phone_number,
            items=[item.model_dump() for item in data.items],
            affiliate_code=data.affiliate_code,
        )
    except ServiceError as e:
        await handle_service_error(
            session, e, "Order rejected", user_id=user.id, affiliate_code=data.affiliate_code
        )
    # Stock changed
    await cache.invalidate_products()
    return order


@router.post("/availability")
async def check_availability(data: AvailabilityCheck, session: AsyncSession = Depends(get_session)):
    return await OrderService(session).check_availability([item.model_dump() for item in data.items])


@router.get("")
async def my_orders(
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await OrderService(session).get_user_orders(user.id)


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await OrderService(session).get_order(order_id, user_id=user.id)
    except ServiceError as e:
        await handle_service_error(session, e, "Order lookup failed", order_id=order_id)


@router.post("/{order_id}/pay")
async def pay_order(
    order_id: int,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await OrderService(session).complete_payment(order_id, user_id=user.id)
    except ServiceError as e:
        await handle_service_error(session, e, "Order payment failed", order_id=order_id)
