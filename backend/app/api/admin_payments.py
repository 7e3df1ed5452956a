"""
Admin payments: the four money flows an administrator settles by hand.

All lists share the payment view shape (payment_id, affiliate_code,
amount, status, type, details). Status changes invalidate cached analytics.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_cache, require_admin, handle_service_error
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.schemas import PaymentStatusUpdate, ReferralCommissionCreate
from backend.app.services.cache import CacheService
from backend.app.services.referral_commissions import ReferralCommissionService, referral_to_payment_view
from backend.app.services.registration_payments import RegistrationPaymentService, payment_to_view
from backend.app.services.sales_commissions import SalesCommissionService
from backend.app.services.withdrawals import WithdrawalService, withdrawal_to_payment_view

router = APIRouter()
logger = get_logger(__name__)


# ============================================
# REGISTRATION PAYMENTS
# ============================================

@router.get("/registration")
async def list_registration_payments(
    status: Optional[str] = None,
    referer_code: Optional[str] = None,
    user_id: Optional[int] = None,
    session: AsyncSession = Depends(get_session),
):
    return await RegistrationPaymentService(session).list_all(status, referer_code, user_id)


@router.get("/registration/{payment_id}")
async def get_registration_payment(payment_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return payment_to_view(await RegistrationPaymentService(session).get_payment(payment_id))
    except ServiceError as e:
        await handle_service_error(session, e, "Registration payment lookup failed", payment_id=payment_id)


@router.put("/registration/{payment_id}/status")
async def update_registration_payment(
    payment_id: int,
    data: PaymentStatusUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Completing a registration payment activates the affiliate."""
    try:
        view = await RegistrationPaymentService(session).update_status(payment_id, data.status)
    except ServiceError as e:
        await handle_service_error(
            session, e, "Registration payment update rejected", payment_id=payment_id, status=data.status
        )
    await cache.invalidate_analytics()
    return view


# ============================================
# REFERRAL COMMISSIONS
# ============================================

@router.get("/referral-commissions")
async def list_referral_commissions(
    status: Optional[str] = None,
    referer_code: Optional[str] = None,
    new_affiliate_code: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    return await ReferralCommissionService(session).list_all(status, referer_code, new_affiliate_code)


@router.post("/referral-commissions", status_code=201)
async def create_referral_commission(
    data: ReferralCommissionCreate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    amount = data.amount if data.amount is not None else get_settings().REFERRAL_COMMISSION
    try:
        view = await ReferralCommissionService(session).create(
            data.referer_code, data.new_affiliate_code, amount, data.payment_id
        )
    except ServiceError as e:
        await handle_service_error(session, e, "Referral commission create rejected", referer_code=data.referer_code)
    await cache.invalidate_analytics()
    return view


@router.get("/referral-commissions/{commission_id}")
async def get_referral_commission(commission_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return referral_to_payment_view(await ReferralCommissionService(session).get_commission(commission_id))
    except ServiceError as e:
        await handle_service_error(session, e, "Referral commission lookup failed", commission_id=commission_id)


@router.put("/referral-commissions/{commission_id}/status")
async def update_referral_commission(
    commission_id: int,
    data: PaymentStatusUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        view = await ReferralCommissionService(session).update_status(commission_id, data.status)
    except ServiceError as e:
        await handle_service_error(
            session, e, "Referral commission update rejected", commission_id=commission_id, status=data.status
        )
    await cache.invalidate_analytics()
    return view


# ============================================
# SALES COMMISSIONS
# ============================================

@router.get("/sales-commissions")
async def list_sales_commissions(
    status: Optional[str] = None,
    affiliate_code: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    return await SalesCommissionService(session).list_all(status, affiliate_code)


@router.get("/sales-commissions/{commission_id}")
async def get_sales_commission(commission_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await SalesCommissionService(session).get_payment_view(commission_id)
    except ServiceError as e:
        await handle_service_error(session, e, "Sales commission lookup failed", commission_id=commission_id)


@router.put("/sales-commissions/{commission_id}/status")
async def update_sales_commission(
    commission_id: int,
    data: PaymentStatusUpdate,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        view = await SalesCommissionService(session).update_status(commission_id, data.status)
    except ServiceError as e:
        await handle_service_error(
            session, e, "Sales commission update rejected", commission_id=commission_id, status=data.status
        )
    await cache.invalidate_analytics()
    return view


# ============================================
# WITHDRAWALS
# ============================================

@router.get("/withdrawals")
async def list_withdrawals(
    status: Optional[str] = None,
    affiliate_code: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    return await WithdrawalService(session).get_all_withdrawals(affiliate_code, status, limit, offset)


@router.get("/withdrawals/{withdrawal_id}")
async def get_withdrawal(withdrawal_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return withdrawal_to_payment_view(await WithdrawalService(session).get_withdrawal(withdrawal_id))
    except ServiceError as e:
        await handle_service_error(session, e, "Withdrawal lookup failed", withdrawal_id=withdrawal_id)


@router.put("/withdrawals/{withdrawal_id}/status")
async def update_withdrawal(
    withdrawal_id: int,
    data: PaymentStatusUpdate,
    actor: str = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Completing a withdrawal debits the affiliate's balance."""
    try:
        withdrawal = await WithdrawalService(session).update_status(
            withdrawal_id, data.status, reason=data.reason, processed_by=actor
        )
    except ServiceError as e:
        await handle_service_error(
            session, e, "Withdrawal update rejected", withdrawal_id=withdrawal_id, status=data.status
        )
    await cache.invalidate_analytics()
    return withdrawal_to_payment_view(withdrawal)
