from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_cache, get_current_user, handle_service_error
from backend.app.core.logging import get_logger
from backend.app.models.user import UserProfile
from backend.app.schemas import ReviewCreate
from backend.app.services.cache import CacheService
from backend.app.services.products import ProductService, ProductServiceError

router = APIRouter()
logger = get_logger(__name__)


@router.get("")
async def list_products(
    ids: Optional[str] = Query(None, description="Comma-separated product ids; only active ones are returned"),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Product catalog with ratings. Cached for a minute."""
    service = ProductService(session)
    if ids:
        try:
            product_ids = [int(x) for x in ids.split(",") if x.strip()]
        except ValueError:
            raise HTTPException(status_code=422, detail="ids must be a comma-separated list of integers")
        return await service.get_multiple_products(product_ids)

    cached = await cache.get_products()
    if cached is not None:
        return cached
    products = await service.list_products()
    await cache.set_products(products)
    return products


@router.get("/{product_id}")
async def get_product(product_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await ProductService(session).get_product_details(product_id)
    except ProductServiceError as e:
        await handle_service_error(session, e, "Product lookup failed", product_id=product_id)


@router.get("/{product_id}/variations")
async def get_variations(product_id: int, session: AsyncSession = Depends(get_session)):
    service = ProductService(session)
    try:
        await service.get_product(product_id)
    except ProductServiceError as e:
        await handle_service_error(session, e, "Product lookup failed", product_id=product_id)
    return await service.get_variations(product_id)


@router.post("/{product_id}/reviews", status_code=201)
async def add_review(
    product_id: int,
    data: ReviewCreate,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        review = await ProductService(session).add_review(product_id, user.id, data.rating, data.comment)
    except ProductServiceError as e:
        await handle_service_error(session, e, "Review rejected", product_id=product_id)
    await cache.invalidate_products()
    logger.info("Review added", product_id=product_id, rating=data.rating)
    return review
