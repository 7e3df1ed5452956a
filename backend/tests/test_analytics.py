"""
Tests for the admin analytics reports.

Tests cover:
- Shop sales: totals over completed orders, date filters, rankings, trends
- Referral programme: money in/out, top referers, monthly trends
- Affiliate sales: totals, cancelled commissions excluded, top affiliates/products
- Report caching and invalidation by admin status changes
"""
import pytest
from datetime import date, datetime
from decimal import Decimal
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.commission import ReferralCommission, SalesCommission
from backend.app.services.affiliate_sales_analytics import AffiliateSalesAnalyticsService
from backend.app.services.referral_analytics import ReferralAnalyticsService
from backend.app.services.sales_analytics import SalesAnalyticsService, _months_back
from backend.tests.conftest import admin_headers, create_affiliate, create_order, create_product


# ============================================
# HELPERS
# ============================================

def test_months_back_crosses_year():
    assert _months_back(date(2024, 3, 15), 0) == date(2024, 3, 1)
    assert _months_back(date(2024, 3, 15), 2) == date(2024, 1, 1)
    assert _months_back(date(2024, 3, 15), 3) == date(2023, 12, 1)
    assert _months_back(date(2024, 3, 15), 27) == date(2021, 12, 1)


# ============================================
# SHOP SALES
# ============================================

@pytest.mark.asyncio
async def test_sales_totals_count_completed_orders_only(test_session: AsyncSession, test_user):
    phone = await create_product(test_session, name="Phone", price=Decimal("1000.00"), category="Electronics")
    shirt = await create_product(test_session, name="Shirt", price=Decimal("250.00"), category=None)
    await create_order(test_session, test_user.id, phone, quantity=2)
    await create_order(test_session, test_user.id, shirt, quantity=4)
    await create_order(test_session, test_user.id, phone, quantity=5, status="pending")
    await create_order(test_session, test_user.id, phone, quantity=5, status="cancelled")

    service = SalesAnalyticsService(test_session)

    assert await service.get_total_income() == Decimal("3000.00")
    assert await service.get_total_orders() == 2
    assert await service.get_total_products_sold() == 6
    assert await service.get_average_order_value() == Decimal("1500.00")

    top = await service.get_top_products()
    assert [p["product_name"] for p in top] == ["Phone", "Shirt"]
    assert top[0]["total_revenue"] == 2000.0
    assert top[1]["total_quantity"] == 4

    categories = await service.get_sales_by_category()
    assert categories == [
        {"category": "Electronics", "revenue": 2000.0, "quantity": 2},
        {"category": "Uncategorized", "revenue": 1000.0, "quantity": 4},
    ]


@pytest.mark.asyncio
async def test_sales_empty(test_session: AsyncSession):
    report = await SalesAnalyticsService(test_session).get_analytics()

    assert report["total_income"] == 0.0
    assert report["total_orders"] == 0
    assert report["average_order_value"] == 0.0
    assert report["top_products"] == []
    assert report["recent_orders"] == []


@pytest.mark.asyncio
async def test_sales_date_filter_is_inclusive(test_session: AsyncSession, test_user, test_product):
    await create_order(test_session, test_user.id, test_product, created_at=datetime(2024, 1, 31, 23, 59))
    await create_order(test_session, test_user.id, test_product, created_at=datetime(2024, 2, 1, 0, 0))
    await create_order(test_session, test_user.id, test_product, created_at=datetime(2024, 3, 1, 12, 0))

    service = SalesAnalyticsService(test_session)

    assert await service.get_total_orders(date(2024, 1, 31), date(2024, 2, 1)) == 2
    assert await service.get_total_orders(start=date(2024, 2, 1)) == 2
    assert await service.get_total_orders(end=date(2024, 1, 31)) == 1


@pytest.mark.asyncio
async def test_monthly_and_daily_trends(test_session: AsyncSession, test_user, test_product):
    await create_order(test_session, test_user.id, test_product, created_at=datetime(2023, 12, 5, 10, 0))
    await create_order(test_session, test_user.id, test_product, created_at=datetime(2024, 3, 2, 10, 0))
    await create_order(test_session, test_user.id, test_product, quantity=2, created_at=datetime(2024, 3, 9, 10, 0))
    # Older than the 12 month window
    await create_order(test_session, test_user.id, test_product, created_at=datetime(2023, 1, 5, 10, 0))

    service = SalesAnalyticsService(test_session)
    today = date(2024, 3, 10)

    monthly = await service.get_monthly_sales_trend(today=today)
    assert monthly == [
        {"month": "2023-12", "revenue": 1000.0, "orders": 1},
        {"month": "2024-03", "revenue": 3000.0, "orders": 2},
    ]

    daily = await service.get_daily_sales(days=7, today=today)
    assert daily == [
        {"date": "2024-03-09", "revenue": 2000.0, "orders": 1},
    ]


# ============================================
# REFERRAL PROGRAMME
# ============================================

@pytest.mark.asyncio
async def test_referral_analytics(test_session: AsyncSession):
    await create_affiliate(test_session, "AFROOT01")
    await create_affiliate(test_session, "AFROOT02")
    await create_affiliate(test_session, "AFKID001", referer="AFROOT01")
    await create_affiliate(test_session, "AFKID002", referer="AFROOT01")
    await create_affiliate(test_session, "AFKID003", referer="AFROOT02")
    test_session.add_all([
        ReferralCommission(referer_code="AFROOT01", new_affiliate_code="AFKID001", amount=Decimal("250.00"), status="completed"),
        ReferralCommission(referer_code="AFROOT01", new_affiliate_code="AFKID002", amount=Decimal("250.00"), status="pending"),
        ReferralCommission(referer_code="AFROOT02", new_affiliate_code="AFKID003", amount=Decimal("250.00"), status="paid"),
    ])
    await test_session.commit()

    report = await ReferralAnalyticsService(test_session).get_analytics()

    assert report["total_affiliates"] == 5
    # Join fee defaults to 500
    assert report["total_money_in"] == 2500.0
    assert report["total_money_out"] == 500.0
    assert report["net_profit"] == 2000.0

    top = report["top_performers"]
    assert [p["affiliate_code"] for p in top] == ["AFROOT01", "AFROOT02"]
    assert top[0]["total_referrals"] == 2
    assert top[0]["total_earnings"] == 250.0

    month = date.today().strftime("%Y-%m")
    assert report["monthly_trends"] == [
        {"month": month, "money_in": 2500.0, "money_out": 500.0, "net_profit": 2000.0, "new_affiliates": 5},
    ]
    assert len(report["recent_commissions"]) == 3


@pytest.mark.asyncio
async def test_referral_analytics_empty(test_session: AsyncSession):
    report = await ReferralAnalyticsService(test_session).get_analytics()

    assert report["total_affiliates"] == 0
    assert report["net_profit"] == 0.0
    assert report["top_performers"] == []
    assert report["monthly_trends"] == []


# ============================================
# AFFILIATE SALES
# ============================================

async def commission_rows(session: AsyncSession, user_id: int, product, statuses):
    """One attributed order and commission per status, for AFTEST01."""
    for status in statuses:
        order = await create_order(session, user_id, product, affiliate_code="AFTEST01")
        session.add(SalesCommission(
            affiliate_code="AFTEST01",
            order_id=order.id,
            product_id=product.id,
            sale_amount=Decimal("1000.00"),
            commission_amount=Decimal("100.00"),
            status=status,
        ))
    await session.commit()


@pytest.mark.asyncio
async def test_affiliate_sales_totals_exclude_cancelled(
    test_session: AsyncSession,
    test_user,
    test_product,
    test_affiliate,
):
    await commission_rows(test_session, test_user.id, test_product, ["completed", "pending", "cancelled"])

    report = await AffiliateSalesAnalyticsService(test_session).get_analytics()

    assert report["total_sales_revenue"] == 2000.0
    assert report["total_commission_paid"] == 100.0
    assert report["total_commission_pending"] == 100.0
    assert report["net_revenue"] == 1900.0
    assert report["total_orders"] == 2

    top = report["top_affiliates"]
    assert len(top) == 1
    assert top[0]["affiliate_code"] == "AFTEST01"
    assert top[0]["average_order_value"] == 1000.0

    assert report["sales_trends"][0]["total_orders"] == 2
    # Recent sales list every commission, cancelled ones included
    assert len(report["recent_sales"]) == 3
    assert report["recent_sales"][0]["product_name"] == "Test Product"


@pytest.mark.asyncio
async def test_affiliate_top_products(test_session: AsyncSession, test_user, test_product):
    await create_affiliate(test_session, "AFONE001")
    await create_affiliate(test_session, "AFTWO001")
    other = await create_product(test_session, name="Cheap", price=Decimal("10.00"))
    await create_order(test_session, test_user.id, test_product, affiliate_code="AFONE001")
    await create_order(test_session, test_user.id, test_product, quantity=2, affiliate_code="AFTWO001")
    await create_order(test_session, test_user.id, other, affiliate_code="AFONE001")
    await create_order(test_session, test_user.id, other, quantity=9)

    top = await AffiliateSalesAnalyticsService(test_session).get_top_products()

    assert [p["product_name"] for p in top] == ["Test Product", "Cheap"]
    assert top[0]["total_quantity_sold"] == 3
    assert top[0]["total_revenue"] == 3000.0
    assert top[0]["number_of_affiliates"] == 2
    assert top[1]["total_quantity_sold"] == 1


# ============================================
# API AND CACHING
# ============================================

@pytest.mark.asyncio
async def test_analytics_require_admin(client: AsyncClient, auth_header: dict):
    for path in ("/admin/analytics/sales", "/admin/analytics/referrals", "/admin/analytics/affiliate-sales"):
        assert (await client.get(path)).status_code == 401
        assert (await client.get(path, headers=auth_header)).status_code == 403


@pytest.mark.asyncio
async def test_sales_report_rejects_reversed_range(client: AsyncClient):
    response = await client.get(
        "/admin/analytics/sales?start=2024-02-01&end=2024-01-01",
        headers=admin_headers(),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_reports_are_cached_until_status_change(
    client: AsyncClient,
    test_session: AsyncSession,
    test_user,
    test_product,
    mock_cache,
):
    first = await client.get("/admin/analytics/sales", headers=admin_headers())
    assert first.json()["total_orders"] == 0
    assert await mock_cache.get_analytics("analytics:sales:all") is not None

    order = await create_order(test_session, test_user.id, test_product, status="pending")
    await client.put(f"/admin/orders/{order.id}/status", json={"status": "completed"}, headers=admin_headers())

    # The status change dropped the cached report
    second = await client.get("/admin/analytics/sales", headers=admin_headers())
    assert second.json()["total_orders"] == 1


@pytest.mark.asyncio
async def test_filtered_reports_are_cached_separately(client: AsyncClient, test_session: AsyncSession, test_user, test_product, mock_cache):
    await create_order(test_session, test_user.id, test_product, created_at=datetime(2024, 1, 15, 12, 0))

    january = await client.get("/admin/analytics/sales?start=2024-01-01&end=2024-01-31", headers=admin_headers())
    february = await client.get("/admin/analytics/sales?start=2024-02-01&end=2024-02-29", headers=admin_headers())

    assert january.json()["total_orders"] == 1
    assert february.json()["total_orders"] == 0
    assert await mock_cache.get_analytics("analytics:sales:end=2024-01-31,start=2024-01-01") is not None


@pytest.mark.asyncio
async def test_affiliate_sales_and_referral_endpoints(client: AsyncClient, test_affiliate):
    referrals = await client.get("/admin/analytics/referrals", headers=admin_headers())
    assert referrals.status_code == 200
    assert referrals.json()["total_affiliates"] == 1

    sales = await client.get("/admin/analytics/affiliate-sales", headers=admin_headers())
    assert sales.status_code == 200
    assert sales.json()["total_sales_revenue"] == 0.0
