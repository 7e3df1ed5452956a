"""
Tests for affiliate balances and reconciliation.

Tests cover:
- Credits and debits keep balance == total_earnings - total_withdrawals
- Available balance holds back open withdrawals
- Reconciliation against the commission and withdrawal ledgers
- Admin balance and reconcile endpoints
"""
import pytest
from decimal import Decimal
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.affiliate import AffiliateProfile
from backend.app.models.commission import ReferralCommission, SalesCommission
from backend.app.models.withdrawal import Withdrawal
from backend.app.services.balances import (
    AffiliateNotFoundError,
    BalanceService,
    InsufficientBalanceError,
    REFERRAL,
    SALES,
)
from backend.tests.conftest import admin_headers, create_affiliate, create_order


def assert_consistent(profile: AffiliateProfile):
    assert profile.total_earnings == profile.commission_earnings + profile.referals_earnings
    assert profile.balance == profile.total_earnings - profile.total_withdrawals


async def add_ledger(session: AsyncSession, user_id: int, product) -> None:
    """AFTEST01 ledger: 100.00 paid sales, 250.00 paid referral, 40.00 paid out, plus noise."""
    order = await create_order(session, user_id, product, affiliate_code="AFTEST01")
    later_order = await create_order(session, user_id, product, affiliate_code="AFTEST01")
    await create_affiliate(session, "AFNEW001", referer="AFTEST01")
    session.add_all([
        SalesCommission(
            affiliate_code="AFTEST01", order_id=order.id, product_id=product.id,
            sale_amount=Decimal("1000.00"), commission_amount=Decimal("100.00"), status="completed",
        ),
        SalesCommission(
            affiliate_code="AFTEST01", order_id=later_order.id, product_id=product.id,
            sale_amount=Decimal("500.00"), commission_amount=Decimal("50.00"), status="pending",
        ),
        ReferralCommission(
            referer_code="AFTEST01", new_affiliate_code="AFNEW001", amount=Decimal("250.00"), status="paid",
        ),
        Withdrawal(affiliate_code="AFTEST01", amount=Decimal("40.00"), phone_number="0712345678", status="completed"),
        Withdrawal(affiliate_code="AFTEST01", amount=Decimal("60.00"), phone_number="0712345678", status="pending"),
    ])
    await session.commit()


# ============================================
# LEDGER EVENTS
# ============================================

@pytest.mark.asyncio
async def test_credit_and_debit_keep_invariant(test_session: AsyncSession, test_affiliate: AffiliateProfile):
    service = BalanceService(test_session)

    await service.credit_commission("AFTEST01", Decimal("100.00"), SALES)
    await service.credit_commission("AFTEST01", Decimal("250.00"), REFERRAL)
    await service.debit_withdrawal("AFTEST01", Decimal("120.00"))
    await test_session.commit()

    await test_session.refresh(test_affiliate)
    assert test_affiliate.balance == Decimal("230.00")
    assert test_affiliate.commission_earnings == Decimal("100.00")
    assert test_affiliate.referals_earnings == Decimal("250.00")
    assert test_affiliate.total_withdrawals == Decimal("120.00")
    assert_consistent(test_affiliate)


@pytest.mark.asyncio
async def test_debit_more_than_balance(test_session: AsyncSession, test_affiliate: AffiliateProfile):
    with pytest.raises(InsufficientBalanceError) as exc:
        await BalanceService(test_session).debit_withdrawal("AFTEST01", Decimal("0.01"))
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_credit_unknown_kind(test_session: AsyncSession, test_affiliate: AffiliateProfile):
    with pytest.raises(ValueError):
        await BalanceService(test_session).credit_commission("AFTEST01", Decimal("1.00"), "bonus")


@pytest.mark.asyncio
async def test_unknown_affiliate(test_session: AsyncSession):
    with pytest.raises(AffiliateNotFoundError):
        await BalanceService(test_session).get_balance_by_code("AFNOBODY")


@pytest.mark.asyncio
async def test_available_balance(test_session: AsyncSession):
    await create_affiliate(test_session, "AFRICH01", balance=Decimal("500.00"))
    test_session.add_all([
        Withdrawal(affiliate_code="AFRICH01", amount=Decimal("100.00"), phone_number="0712345678", status="pending"),
        Withdrawal(affiliate_code="AFRICH01", amount=Decimal("50.00"), phone_number="0712345678", status="processing"),
        Withdrawal(affiliate_code="AFRICH01", amount=Decimal("70.00"), phone_number="0712345678", status="failed"),
    ])
    await test_session.commit()

    service = BalanceService(test_session)
    assert await service.get_balance_by_code("AFRICH01") == Decimal("500.00")
    assert await service.get_available_balance("AFRICH01") == Decimal("350.00")


# ============================================
# RECONCILIATION
# ============================================

@pytest.mark.asyncio
async def test_reconcile_profile_fixes_drift(
    test_session: AsyncSession,
    test_user,
    test_product,
    test_affiliate: AffiliateProfile,
):
    await add_ledger(test_session, test_user.id, test_product)
    # Stored aggregates say nothing was ever earned
    service = BalanceService(test_session)

    assert await service.reconcile_profile("AFTEST01") is True
    await test_session.commit()
    await test_session.refresh(test_affiliate)

    assert test_affiliate.commission_earnings == Decimal("100.00")
    assert test_affiliate.referals_earnings == Decimal("250.00")
    assert test_affiliate.total_earnings == Decimal("350.00")
    assert test_affiliate.total_withdrawals == Decimal("40.00")
    assert test_affiliate.balance == Decimal("310.00")
    assert_consistent(test_affiliate)

    # Already in line with the ledgers
    assert await service.reconcile_profile("AFTEST01") is False


@pytest.mark.asyncio
async def test_reconcile_all_counts_corrected_profiles(test_session: AsyncSession):
    await create_affiliate(test_session, "AFCLEAN1")
    await create_affiliate(test_session, "AFDRIFT1", balance=Decimal("99.00"))

    fixed = await BalanceService(test_session).reconcile_all()

    assert fixed == 1


# ============================================
# ADMIN ENDPOINTS
# ============================================

@pytest.mark.asyncio
async def test_admin_reconcile_endpoints(
    client: AsyncClient,
    test_session: AsyncSession,
    test_user,
    test_product,
    test_affiliate: AffiliateProfile,
):
    await add_ledger(test_session, test_user.id, test_product)

    one = await client.post("/admin/affiliates/aftest01/reconcile", headers=admin_headers())
    assert one.status_code == 200
    assert one.json()["corrected"] is True
    assert one.json()["profile"]["balance"] == 310.0

    everything = await client.post("/admin/affiliates/reconcile", headers=admin_headers())
    assert everything.json() == {"corrected": 0}

    missing = await client.post("/admin/affiliates/AFNOBODY/reconcile", headers=admin_headers())
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_admin_affiliate_balance(client: AsyncClient, test_session: AsyncSession):
    profile = await create_affiliate(test_session, "AFRICH01", balance=Decimal("500.00"))
    test_session.add(
        Withdrawal(affiliate_code="AFRICH01", amount=Decimal("100.00"), phone_number="0712345678", status="pending")
    )
    await test_session.commit()

    response = await client.get(f"/admin/affiliates/{profile.id}/balance", headers=admin_headers())

    assert response.status_code == 200
    assert response.json() == {"affiliate_code": "AFRICH01", "balance": 500.0, "available_balance": 400.0}

    missing = await client.get("/admin/affiliates/99999/balance", headers=admin_headers())
    assert missing.status_code == 404
