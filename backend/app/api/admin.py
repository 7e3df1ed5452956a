"""
Admin panel: catalog management, orders, users, affiliates and balance
reconciliation. Mounted under /admin with require_admin on every route.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_cache, handle_service_error
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.schemas import (
    OrderStatusUpdate,
    ProductCreate,
    ProductDetailsUpdate,
    ProductImagesUpdate,
    ProductUpdate,
    VariationCreate,
    VariationUpdate,
)
from backend.app.services.affiliates import AffiliateService
from backend.app.services.balances import BalanceService, profile_to_dict
from backend.app.services.cache import CacheService
from backend.app.services.orders import OrderService
from backend.app.services.products import ProductService, product_to_dict
from backend.app.services.users import UserService, user_to_dict

router = APIRouter()
logger = get_logger(__name__)


# ============================================
# PRODUCTS
# ============================================

@router.get("/products")
async def list_products(session: AsyncSession = Depends(get_session)):
    """All products, inactive ones included."""
    return await ProductService(session).list_products()


@router.post("/products", status_code=201)
async def create_product(
    data: ProductCreate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        product = await ProductService(session).create_product(data.model_dump())
    except ServiceError as e:
        await handle_service_error(session, e, "Product create failed")
    await cache.invalidate_products()
    return product_to_dict(product)


@router.get("/products/{product_id}")
async def get_product(product_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await ProductService(session).get_product_details(product_id)
    except ServiceError as e:
        await handle_service_error(session, e, "Product lookup failed", product_id=product_id)


@router.put("/products/{product_id}")
async def update_product(
    product_id: int,
    data: ProductUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        product = await ProductService(session).update_product(product_id, data.model_dump(exclude_unset=True))
    except ServiceError as e:
        await handle_service_error(session, e, "Product update failed", product_id=product_id)
    await cache.invalidate_products()
    return product_to_dict(product)


@router.put("/products/{product_id}/details")
async def update_product_details(
    product_id: int,
    data: ProductDetailsUpdate,
    session: AsyncSession = Depends(get_session),
):
    try:
        return await ProductService(session).upsert_details(product_id, data.model_dump(exclude_unset=True))
    except ServiceError as e:
        await handle_service_error(session, e, "Product details update failed", product_id=product_id)


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        await ProductService(session).delete_product(product_id)
    except ServiceError as e:
        await handle_service_error(session, e, "Product delete failed", product_id=product_id)
    await cache.invalidate_products()
    return {"status": "ok"}


@router.put("/products/{product_id}/images")
async def set_product_images(
    product_id: int,
    data: ProductImagesUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Replace the image list with already-hosted URLs."""
    try:
        images = await ProductService(session).set_product_images(product_id, data.urls)
    except ServiceError as e:
        await handle_service_error(session, e, "Product images update failed", product_id=product_id)
    await cache.invalidate_products()
    return {"product_id": product_id, "product_images": images}


@router.delete("/products/{product_id}/images")
async def remove_product_image(
    product_id: int,
    url: str = Query(...),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        images = await ProductService(session).remove_product_image(product_id, url)
    except ServiceError as e:
        await handle_service_error(session, e, "Product image removal failed", product_id=product_id)
    await cache.invalidate_products()
    return {"product_id": product_id, "product_images": images}


@router.post("/products/{product_id}/variations", status_code=201)
async def add_variation(
    product_id: int,
    data: VariationCreate,
    session: AsyncSession = Depends(get_session),
):
    try:
        return await ProductService(session).add_variation(product_id, data.model_dump())
    except ServiceError as e:
        await handle_service_error(session, e, "Variation create failed", product_id=product_id)


@router.put("/variations/{variation_id}")
async def update_variation(
    variation_id: int,
    data: VariationUpdate,
    session: AsyncSession = Depends(get_session),
):
    try:
        return await ProductService(session).update_variation(variation_id, data.model_dump(exclude_unset=True))
    except ServiceError as e:
        await handle_service_error(session, e, "Variation update failed", variation_id=variation_id)


# ============================================
# ORDERS
# ============================================

@router.get("/orders")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    return await OrderService(session).get_all_orders(page, limit)


@router.get("/orders/{order_id}")
async def get_order(order_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await OrderService(session).get_order_with_items(order_id)
    except ServiceError as e:
        await handle_service_error(session, e, "Order lookup failed", order_id=order_id)


@router.put("/orders/{order_id}/status")
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        order = await OrderService(session).update_status(order_id, data.status)
    except ServiceError as e:
        await handle_service_error(session, e, "Order status change rejected", order_id=order_id, status=data.status)
    await cache.invalidate_analytics()
    await cache.invalidate_products()
    return order


@router.delete("/orders/{order_id}")
async def delete_order(
    order_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        await OrderService(session).delete_order(order_id)
    except ServiceError as e:
        await handle_service_error(session, e, "Order delete rejected", order_id=order_id)
    await cache.invalidate_analytics()
    await cache.invalidate_products()
    return {"status": "ok"}


# ============================================
# USERS
# ============================================

@router.get("/users")
async def list_users(session: AsyncSession = Depends(get_session)):
    return await UserService(session).list_users()


@router.put("/users/{user_id}/admin")
async def set_user_admin(
    user_id: int,
    is_admin: bool = Query(True),
    session: AsyncSession = Depends(get_session),
):
    try:
        user = await UserService(session).set_admin(user_id, is_admin)
    except ServiceError as e:
        await handle_service_error(session, e, "Admin flag change failed", user_id=user_id)
    return user_to_dict(user)


# ============================================
# AFFILIATES
# ============================================

@router.get("/affiliates")
async def list_affiliates(session: AsyncSession = Depends(get_session)):
    return await AffiliateService(session).list_affiliates()


@router.post("/affiliates/reconcile")
async def reconcile_all(session: AsyncSession = Depends(get_session)):
    """Recompute every affiliate's aggregates from the commission and withdrawal ledgers."""
    fixed = await BalanceService(session).reconcile_all()
    logger.info("Balances reconciled", corrected=fixed)
    return {"corrected": fixed}


@router.post("/affiliates/{code}/reconcile")
async def reconcile_one(
    code: str,
    session: AsyncSession = Depends(get_session),
):
    service = BalanceService(session)
    try:
        changed = await service.reconcile_profile(code.strip().upper())
        await session.commit()
        profile = await service.get_profile_by_code(code.strip().upper())
    except ServiceError as e:
        await handle_service_error(session, e, "Reconcile failed", affiliate_code=code)
    return {"corrected": changed, "profile": profile_to_dict(profile)}


@router.get("/affiliates/{profile_id}")
async def get_affiliate(profile_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await AffiliateService(session).get_affiliate(profile_id)
    except ServiceError as e:
        await handle_service_error(session, e, "Affiliate lookup failed", profile_id=profile_id)


@router.get("/affiliates/{code}/referrals")
async def get_affiliate_referrals(code: str, session: AsyncSession = Depends(get_session)):
    return await AffiliateService(session).get_affiliate_referrals(code.strip().upper())


@router.get("/affiliates/{profile_id}/balance")
async def get_affiliate_balance(
    profile_id: int,
    session: AsyncSession = Depends(get_session),
):
    """Stored balance next to the available figure (open withdrawals held back)."""
    service = BalanceService(session)
    try:
        profile = await service.get_profile_by_id(profile_id)
    except ServiceError as e:
        await handle_service_error(session, e, "Affiliate lookup failed", profile_id=profile_id)
    return {
        "affiliate_code": profile.affiliate_code,
        "balance": float(await service.get_balance_by_id(profile_id)),
        "available_balance": float(await service.get_available_balance(profile.affiliate_code)),
    }
