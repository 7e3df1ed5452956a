"""
Affiliate dashboard: joining, earnings, referrals, sales and withdrawals.

Everything except status, validate-code and join requires the caller to be
an affiliate (see get_affiliate_code).
"""
from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import (
    get_session,
    get_current_user,
    get_affiliate_code,
    handle_service_error,
)
from backend.app.core.exceptions import ServiceError
from backend.app.core.limiter import limiter
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.models.user import UserProfile
from backend.app.schemas import AffiliateCodeCheck, AffiliateJoin, WithdrawalCreate, WithdrawalCancel
from backend.app.services.affiliates import AffiliateService
from backend.app.services.referral_commissions import ReferralCommissionService
from backend.app.services.registration_payments import RegistrationPaymentService
from backend.app.services.sales_commissions import SalesCommissionService
from backend.app.services.withdrawals import WithdrawalService

router = APIRouter()
logger = get_logger(__name__)


@router.get("/status")
async def affiliate_status(
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await AffiliateService(session).get_affiliate_status(user)


@router.post("/validate-code")
async def validate_code(data: AffiliateCodeCheck, session: AsyncSession = Depends(get_session)):
    """Check a referer or checkout code. Always 200; `valid` carries the verdict."""
    return await AffiliateService(session).validate_affiliate_code(data.code)


@router.post("/join", status_code=201)
async def join(
    data: AffiliateJoin,
    user: UserProfile = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Start affiliate registration. The join fee is recorded as a pending
    registration payment; an admin completes it once the money arrives.
    """
    try:
        payment = await RegistrationPaymentService(session).create_payment(
            user, data.phone_number, data.referer_code
        )
    except ServiceError as e:
        await handle_service_error(session, e, "Affiliate registration rejected", user_id=user.id)
    return payment


@router.get("/summary")
async def summary(
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    return await ReferralCommissionService(session).get_dashboard_summary(code)


@router.get("/balance")
async def balance(
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    return await WithdrawalService(session).get_summary(code)


# --- Referrals ---

@router.get("/referrals")
async def referrals(
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    return await ReferralCommissionService(session).get_formatted_referrals(code)


@router.get("/referrals/stats")
async def referral_stats(
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    return await ReferralCommissionService(session).get_referral_stats(code)


# --- Sales ---

@router.get("/sales")
async def sales(
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    return await SalesCommissionService(session).get_formatted_sales(code)


@router.get("/sales/stats")
async def sales_stats(
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    return await SalesCommissionService(session).get_sales_stats(code)


@router.get("/sales/performance")
async def sales_performance(
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    return await SalesCommissionService(session).get_sales_performance(code)


@router.get("/sales/recent")
async def recent_sales(
    limit: int = Query(10, ge=1, le=100),
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    return await SalesCommissionService(session).get_recent_sales(code, limit)


@router.get("/sales/range")
async def sales_in_range(
    start: date,
    end: date,
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await SalesCommissionService(session).get_sales_by_date_range(code, start, end)
    except ServiceError as e:
        await handle_service_error(session, e, "Sales range query rejected", start=str(start), end=str(end))


# --- Withdrawals ---

@router.get("/withdrawals")
async def withdrawal_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    return await WithdrawalService(session).get_withdrawal_history(code, limit, offset)


@router.post("/withdrawals", status_code=201)
@limiter.limit(get_settings().WITHDRAWAL_RATE_LIMIT)
async def request_withdrawal(
    request: Request,
    data: WithdrawalCreate,
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await WithdrawalService(session).create_withdrawal(code, data.amount, data.phone_number)
    except ServiceError as e:
        await handle_service_error(session, e, "Withdrawal rejected", amount=str(data.amount))


@router.post("/withdrawals/{withdrawal_id}/cancel")
async def cancel_withdrawal(
    withdrawal_id: int,
    data: WithdrawalCancel,
    code: str = Depends(get_affiliate_code),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await WithdrawalService(session).cancel_withdrawal(
            withdrawal_id, reason=data.reason, cancelled_by=code, code=code
        )
    except ServiceError as e:
        await handle_service_error(session, e, "Withdrawal cancel rejected", withdrawal_id=withdrawal_id)
