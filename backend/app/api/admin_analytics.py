from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_cache
from backend.app.services.affiliate_sales_analytics import AffiliateSalesAnalyticsService
from backend.app.services.cache import CacheService
from backend.app.services.referral_analytics import ReferralAnalyticsService
from backend.app.services.sales_analytics import SalesAnalyticsService

router = APIRouter()


@router.get("/sales")
async def sales_analytics(
    start: Optional[date] = None,
    end: Optional[date] = None,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Shop sales over completed orders, optionally within [start, end]."""
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    key = CacheService.analytics_key("sales", start=start, end=end)
    cached = await cache.get_analytics(key)
    if cached is not None:
        return cached
    report = await SalesAnalyticsService(session).get_analytics(start, end)
    await cache.set_analytics(key, report)
    return report


@router.get("/referrals")
async def referral_analytics(
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    key = CacheService.analytics_key("referrals")
    cached = await cache.get_analytics(key)
    if cached is not None:
        return cached
    report = await ReferralAnalyticsService(session).get_analytics()
    await cache.set_analytics(key, report)
    return report


@router.get("/affiliate-sales")
async def affiliate_sales_analytics(
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    key = CacheService.analytics_key("affiliate-sales")
    cached = await cache.get_analytics(key)
    if cached is not None:
        return cached
    report = await AffiliateSalesAnalyticsService(session).get_analytics()
    await cache.set_analytics(key, report)
    return report
