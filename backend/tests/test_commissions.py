"""
Tests for sales and referral commissions.

Tests cover:
- Commission arithmetic
- Accrual when an attributed order is completed
- Settlement by an admin (credit exactly once, terminal states), also from two sessions
- Affiliate sales dashboard (formatted rows, stats, performance, ranges)
- Manual referral commissions
"""
import pytest
from datetime import date, timedelta
from decimal import Decimal
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import InvalidStatusTransitionError
from backend.app.models.affiliate import AffiliateProfile
from backend.app.models.commission import ReferralCommission, SalesCommission
from backend.app.models.order import OrderItem
from backend.app.models.product import Product, ProductVariation
from backend.app.services.referral_commissions import ReferralCommissionService
from backend.app.services.sales_commissions import (
    SalesCommissionService,
    calculate_commission,
    commission_rate,
)
from backend.tests.conftest import (
    admin_headers,
    auth_header_for,
    create_affiliate,
    create_order,
    create_product,
    create_user,
)


def affiliate_headers() -> dict:
    return auth_header_for("auth-aftest01")


async def attributed_completed_order(client: AsyncClient, headers: dict, *items, code="AFTEST01") -> dict:
    """Place an order through the API with `code` and complete it as admin."""
    created = await client.post(
        "/orders",
        json={"phone_number": "0712345678", "items": list(items), "affiliate_code": code},
        headers=headers,
    )
    assert created.status_code == 201, created.text
    order = created.json()
    completed = await client.put(
        f"/admin/orders/{order['id']}/status",
        json={"status": "completed"},
        headers=admin_headers(),
    )
    assert completed.status_code == 200, completed.text
    return order


async def sales_commissions(session: AsyncSession, code: str = "AFTEST01"):
    result = await session.execute(
        select(SalesCommission).where(SalesCommission.affiliate_code == code).order_by(SalesCommission.id)
    )
    return list(result.scalars().all())


# ============================================
# ARITHMETIC
# ============================================

def test_calculate_commission_rounds_half_up():
    assert calculate_commission(Decimal("1000.00"), Decimal("10")) == Decimal("100.00")
    assert calculate_commission(Decimal("999.95"), Decimal("10")) == Decimal("100.00")
    assert calculate_commission(Decimal("0.05"), Decimal("10")) == Decimal("0.01")


def test_calculate_commission_uses_configured_percent():
    # SALES_COMMISSION_PERCENT defaults to 10
    assert calculate_commission(Decimal("250.00")) == Decimal("25.00")


def test_commission_rate():
    assert commission_rate(Decimal("1000"), Decimal("100")) == "10.00"
    assert commission_rate(Decimal("0"), Decimal("5")) == "0"


# ============================================
# ACCRUAL
# ============================================

@pytest.mark.asyncio
async def test_completed_order_accrues_commission(
    client: AsyncClient,
    test_session: AsyncSession,
    test_product: Product,
    test_affiliate: AffiliateProfile,
    auth_header: dict,
):
    order = await attributed_completed_order(client, auth_header, {"product_id": test_product.id, "quantity": 2})

    rows = await sales_commissions(test_session)
    assert len(rows) == 1
    assert rows[0].order_id == order["id"]
    assert rows[0].status == "pending"
    assert rows[0].sale_amount == Decimal("2000.00")
    assert rows[0].commission_amount == Decimal("200.00")

    item = (await test_session.execute(select(OrderItem).where(OrderItem.order_id == order["id"]))).scalar_one()
    assert item.commission_earned == Decimal("200.00")

    # Nothing is credited before settlement
    await test_session.refresh(test_affiliate)
    assert test_affiliate.balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_unattributed_order_accrues_nothing(
    client: AsyncClient,
    test_session: AsyncSession,
    test_product: Product,
    test_affiliate: AffiliateProfile,
    auth_header: dict,
):
    created = await client.post(
        "/orders",
        json={"phone_number": "0712345678", "items": [{"product_id": test_product.id, "quantity": 1}]},
        headers=auth_header,
    )
    await client.put(
        f"/admin/orders/{created.json()['id']}/status",
        json={"status": "completed"},
        headers=admin_headers(),
    )
    assert await sales_commissions(test_session) == []


@pytest.mark.asyncio
async def test_lines_of_same_product_merge(
    client: AsyncClient,
    test_session: AsyncSession,
    test_product: Product,
    test_variation: ProductVariation,
    test_affiliate: AffiliateProfile,
    auth_header: dict,
):
    await attributed_completed_order(
        client,
        auth_header,
        {"product_id": test_product.id, "quantity": 1},
        {"product_id": test_product.id, "variation_id": test_variation.id, "quantity": 1},
    )

    rows = await sales_commissions(test_session)
    assert len(rows) == 1
    assert rows[0].sale_amount == Decimal("2050.00")
    assert rows[0].commission_amount == Decimal("205.00")


@pytest.mark.asyncio
async def test_merged_commission_is_split_across_lines(
    test_session: AsyncSession,
    test_user,
    test_affiliate: AffiliateProfile,
):
    sticker = await create_product(test_session, name="Sticker", price=Decimal("0.05"))
    order = await create_order(test_session, test_user.id, sticker, affiliate_code="AFTEST01")
    for _ in range(2):
        test_session.add(OrderItem(
            order_id=order.id,
            product_id=sticker.id,
            quantity=1,
            price=Decimal("0.05"),
            product_name="Sticker",
            affiliate_code="AFTEST01",
            commission_earned=Decimal("0"),
        ))
    await test_session.commit()

    assert await SalesCommissionService(test_session).accrue_for_order(order) == 1
    await test_session.commit()

    rows = await sales_commissions(test_session)
    # 10% of 0.15 rounds to 0.02, while each 0.05 line alone would round to 0.01
    assert rows[0].commission_amount == Decimal("0.02")
    items = (await test_session.execute(select(OrderItem).where(OrderItem.order_id == order.id))).scalars().all()
    assert sum(item.commission_earned for item in items) == Decimal("0.02")


@pytest.mark.asyncio
async def test_accrual_is_idempotent(
    test_session: AsyncSession,
    test_user,
    test_product: Product,
    test_affiliate: AffiliateProfile,
):
    order = await create_order(test_session, test_user.id, test_product, affiliate_code="AFTEST01")
    service = SalesCommissionService(test_session)

    assert await service.accrue_for_order(order) == 1
    await test_session.commit()
    assert await service.accrue_for_order(order) == 0
    await test_session.commit()

    assert len(await sales_commissions(test_session)) == 1


@pytest.mark.asyncio
async def test_cancel_for_order_only_touches_pending(
    test_session: AsyncSession,
    test_user,
    test_product: Product,
    test_affiliate: AffiliateProfile,
):
    order = await create_order(test_session, test_user.id, test_product, affiliate_code="AFTEST01")
    service = SalesCommissionService(test_session)
    await service.accrue_for_order(order)
    await test_session.commit()

    assert await service.cancel_for_order(order.id) == 1
    await test_session.commit()
    assert await service.cancel_for_order(order.id) == 0


# ============================================
# SETTLEMENT
# ============================================

@pytest.mark.asyncio
async def test_settle_sales_commission_credits_once(
    client: AsyncClient,
    test_session: AsyncSession,
    test_product: Product,
    test_affiliate: AffiliateProfile,
    auth_header: dict,
):
    await attributed_completed_order(client, auth_header, {"product_id": test_product.id, "quantity": 1})
    commission = (await sales_commissions(test_session))[0]
    url = f"/admin/payments/sales-commissions/{commission.id}/status"

    response = await client.put(url, json={"status": "completed"}, headers=admin_headers())
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert response.json()["details"]["paid_at"] is not None

    again = await client.put(url, json={"status": "completed"}, headers=admin_headers())
    assert again.status_code == 400

    await test_session.refresh(test_affiliate)
    assert test_affiliate.balance == Decimal("100.00")
    assert test_affiliate.commission_earnings == Decimal("100.00")
    assert test_affiliate.total_earnings == Decimal("100.00")


@pytest.mark.asyncio
async def test_cancelled_sales_commission_is_terminal(
    client: AsyncClient,
    test_session: AsyncSession,
    test_product: Product,
    test_affiliate: AffiliateProfile,
    auth_header: dict,
):
    await attributed_completed_order(client, auth_header, {"product_id": test_product.id, "quantity": 1})
    commission = (await sales_commissions(test_session))[0]
    url = f"/admin/payments/sales-commissions/{commission.id}/status"

    cancelled = await client.put(url, json={"status": "cancelled"}, headers=admin_headers())
    assert cancelled.status_code == 200

    revived = await client.put(url, json={"status": "completed"}, headers=admin_headers())
    assert revived.status_code == 400

    await test_session.refresh(test_affiliate)
    assert test_affiliate.balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_settle_unknown_status(client: AsyncClient, test_session: AsyncSession, test_user, test_product, test_affiliate):
    order = await create_order(test_session, test_user.id, test_product, affiliate_code="AFTEST01")
    await SalesCommissionService(test_session).accrue_for_order(order)
    await test_session.commit()
    commission = (await sales_commissions(test_session))[0]

    response = await client.put(
        f"/admin/payments/sales-commissions/{commission.id}/status",
        json={"status": "paid"},
        headers=admin_headers(),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_sales_commission_views(
    client: AsyncClient,
    test_session: AsyncSession,
    test_product: Product,
    test_affiliate: AffiliateProfile,
    auth_header: dict,
):
    order = await attributed_completed_order(client, auth_header, {"product_id": test_product.id, "quantity": 1})

    listing = await client.get("/admin/payments/sales-commissions?status=pending", headers=admin_headers())
    assert listing.status_code == 200
    rows = listing.json()
    assert len(rows) == 1
    view = rows[0]
    assert view["payment_id"] == f"SC-{view['id']}"
    assert view["type"] == "sales_commission"
    assert view["amount"] == 100.0
    assert view["details"]["order_id"] == order["id"]
    assert view["details"]["product_name"] == "Test Product"
    assert view["details"]["commission_rate"] == "10.00"

    detail = await client.get(f"/admin/payments/sales-commissions/{view['id']}", headers=admin_headers())
    assert detail.json() == view

    missing = await client.get("/admin/payments/sales-commissions/99999", headers=admin_headers())
    assert missing.status_code == 404

    other = await client.get("/admin/payments/sales-commissions?affiliate_code=AFOTHER1", headers=admin_headers())
    assert other.json() == []


# ============================================
# CONCURRENT SETTLEMENT
# ============================================

@pytest.mark.asyncio
async def test_sales_commission_settled_concurrently_credits_once(two_sessions):
    first, second = two_sessions
    profile = await create_affiliate(first, "AFTEST01")
    buyer = await create_user(first, "buyer-1")
    product = await create_product(first)
    order = await create_order(first, buyer.id, product, affiliate_code="AFTEST01")
    commission = SalesCommission(
        affiliate_code="AFTEST01",
        order_id=order.id,
        product_id=product.id,
        sale_amount=Decimal("1000.00"),
        commission_amount=Decimal("100.00"),
        status="pending",
    )
    first.add(commission)
    await first.commit()

    # The second admin request has already read the row and the profile
    assert (await second.get(SalesCommission, commission.id)).status == "pending"
    await second.get(AffiliateProfile, profile.id)

    await SalesCommissionService(first).update_status(commission.id, "completed")
    with pytest.raises(InvalidStatusTransitionError):
        await SalesCommissionService(second).update_status(commission.id, "completed")
    await second.rollback()

    await first.refresh(profile)
    assert profile.balance == Decimal("100.00")
    assert profile.commission_earnings == Decimal("100.00")
    assert profile.total_earnings == Decimal("100.00")


@pytest.mark.asyncio
async def test_referral_commission_settled_concurrently_credits_once(two_sessions):
    first, second = two_sessions
    referer = await create_affiliate(first, "AFROOT01")
    await create_affiliate(first, "AFKID001", referer="AFROOT01")
    commission = ReferralCommission(
        referer_code="AFROOT01",
        new_affiliate_code="AFKID001",
        amount=Decimal("250.00"),
        status="pending",
    )
    first.add(commission)
    await first.commit()

    assert (await second.get(ReferralCommission, commission.id)).status == "pending"
    await second.get(AffiliateProfile, referer.id)

    await ReferralCommissionService(first).update_status(commission.id, "completed")
    with pytest.raises(InvalidStatusTransitionError):
        await ReferralCommissionService(second).update_status(commission.id, "completed")
    await second.rollback()

    await first.refresh(referer)
    assert referer.balance == Decimal("250.00")
    assert referer.referals_earnings == Decimal("250.00")


# ============================================
# AFFILIATE SALES DASHBOARD
# ============================================

@pytest.mark.asyncio
async def test_sales_dashboard(
    client: AsyncClient,
    test_session: AsyncSession,
    test_product: Product,
    test_variation: ProductVariation,
    test_affiliate: AffiliateProfile,
    auth_header: dict,
):
    await attributed_completed_order(
        client, auth_header, {"product_id": test_product.id, "variation_id": test_variation.id, "quantity": 1}
    )
    await attributed_completed_order(client, auth_header, {"product_id": test_product.id, "quantity": 1})
    first, second = await sales_commissions(test_session)
    await client.put(
        f"/admin/payments/sales-commissions/{first.id}/status",
        json={"status": "completed"},
        headers=admin_headers(),
    )

    sales = (await client.get("/affiliate/sales", headers=affiliate_headers())).json()
    assert len(sales) == 2
    variant_row = next(s for s in sales if s["id"] == first.id)
    assert variant_row["product"] == "Test Product (Red, M)"
    assert variant_row["amount"] == "105.00 KSH"
    assert variant_row["sale_amount"] == "1050.00 KSH"
    assert variant_row["status"] == "Completed"

    stats = (await client.get("/affiliate/sales/stats", headers=affiliate_headers())).json()
    assert stats == {
        "total_sales": 2,
        "completed_sales": 1,
        "pending_sales": 1,
        "total_commission_earnings": 105.0,
        "pending_commission_earnings": 100.0,
        "total_sales_value": 1050.0,
    }

    performance = (await client.get("/affiliate/sales/performance", headers=affiliate_headers())).json()
    assert performance["conversion_rate"] == 50.0
    assert performance["average_commission"] == 105.0

    recent = (await client.get("/affiliate/sales/recent?limit=1", headers=affiliate_headers())).json()
    assert [r["id"] for r in recent] == [second.id]


@pytest.mark.asyncio
async def test_sales_by_date_range(
    client: AsyncClient,
    test_session: AsyncSession,
    test_product: Product,
    test_affiliate: AffiliateProfile,
    auth_header: dict,
):
    await attributed_completed_order(client, auth_header, {"product_id": test_product.id, "quantity": 1})
    today = date.today()

    hit = await client.get(
        f"/affiliate/sales/range?start={today - timedelta(days=1)}&end={today}",
        headers=affiliate_headers(),
    )
    assert hit.status_code == 200
    assert len(hit.json()) == 1
    assert hit.json()[0]["product_name"] == "Test Product"

    miss = await client.get(
        f"/affiliate/sales/range?start={today - timedelta(days=10)}&end={today - timedelta(days=5)}",
        headers=affiliate_headers(),
    )
    assert miss.json() == []

    reversed_range = await client.get(
        f"/affiliate/sales/range?start={today}&end={today - timedelta(days=1)}",
        headers=affiliate_headers(),
    )
    assert reversed_range.status_code == 400


# ============================================
# REFERRAL COMMISSIONS
# ============================================

@pytest.mark.asyncio
async def test_manual_referral_commission(client: AsyncClient, test_session: AsyncSession, test_affiliate: AffiliateProfile):
    await create_affiliate(test_session, "AFNEW001", referer="AFTEST01")

    response = await client.post(
        "/admin/payments/referral-commissions",
        json={"referer_code": "aftest01", "new_affiliate_code": "afnew001"},
        headers=admin_headers(),
    )

    assert response.status_code == 201
    view = response.json()
    assert view["type"] == "referral_commission"
    assert view["amount"] == 250.0
    assert view["details"]["invitee_code"] == "AFNEW001"

    duplicate = await client.post(
        "/admin/payments/referral-commissions",
        json={"referer_code": "AFTEST01", "new_affiliate_code": "AFNEW001"},
        headers=admin_headers(),
    )
    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_manual_referral_commission_rejections(client: AsyncClient, test_affiliate: AffiliateProfile):
    self_referral = await client.post(
        "/admin/payments/referral-commissions",
        json={"referer_code": "AFTEST01", "new_affiliate_code": "AFTEST01"},
        headers=admin_headers(),
    )
    assert self_referral.status_code == 400

    unknown = await client.post(
        "/admin/payments/referral-commissions",
        json={"referer_code": "AFTEST01", "new_affiliate_code": "AFGHOST1"},
        headers=admin_headers(),
    )
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_settle_referral_commission(client: AsyncClient, test_session: AsyncSession, test_affiliate: AffiliateProfile):
    await create_affiliate(test_session, "AFNEW001", referer="AFTEST01")
    commission = ReferralCommission(
        referer_code="AFTEST01",
        new_affiliate_code="AFNEW001",
        amount=Decimal("250.00"),
        status="pending",
    )
    test_session.add(commission)
    await test_session.commit()

    response = await client.put(
        f"/admin/payments/referral-commissions/{commission.id}/status",
        json={"status": "completed"},
        headers=admin_headers(),
    )

    assert response.status_code == 200
    await test_session.refresh(test_affiliate)
    assert test_affiliate.balance == Decimal("250.00")
    assert test_affiliate.referals_earnings == Decimal("250.00")
    assert test_affiliate.commission_earnings == Decimal("0.00")

    stats = (await client.get("/affiliate/referrals/stats", headers=affiliate_headers())).json()
    assert stats["completed_referrals"] == 1
    assert stats["total_earnings"] == 250.0

    listing = await client.get("/admin/payments/referral-commissions?status=completed", headers=admin_headers())
    assert [r["id"] for r in listing.json()] == [commission.id]
