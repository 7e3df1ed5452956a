"""
Affiliate profile balances.

Every change to a profile's money columns goes through this module:
`credit_commission` when a commission is settled and `debit_withdrawal`
when a withdrawal is paid out. `reconcile_*` recomputes the aggregates
from the ledgers and is run daily by the scheduler in main.py.
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import OPEN_WITHDRAWAL_STATUSES, PAID_STATUSES, to_money
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.models.affiliate import AffiliateProfile
from backend.app.models.commission import SalesCommission, ReferralCommission
from backend.app.models.withdrawal import Withdrawal

logger = get_logger(__name__)

SALES = "sales"
REFERRAL = "referral"


class BalanceServiceError(ServiceError):
    """Base exception for balance errors."""


class AffiliateNotFoundError(BalanceServiceError):
    def __init__(self, key):
        super().__init__(f"Affiliate {key} not found", 404)


class InsufficientBalanceError(BalanceServiceError):
    def __init__(self, available: Decimal, requested: Decimal):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient balance. Available: {to_money(available)}, Requested: {to_money(requested)}",
            400,
        )


def profile_to_dict(profile: AffiliateProfile) -> Dict[str, Any]:
    return {
        "id": profile.id,
        "user_id": profile.user_id,
        "affiliate_code": profile.affiliate_code,
        "balance": float(to_money(profile.balance)),
        "total_earnings": float(to_money(profile.total_earnings)),
        "total_withdrawals": float(to_money(profile.total_withdrawals)),
        "referals_earnings": float(to_money(profile.referals_earnings)),
        "commission_earnings": float(to_money(profile.commission_earnings)),
        "referer": profile.referer,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
        "updated_at": profile.updated_at.isoformat() if profile.updated_at else None,
    }


class BalanceService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_profile_by_code(self, code: Optional[str], for_update: bool = False) -> Optional[AffiliateProfile]:
        if not code:
            return None
        query = select(AffiliateProfile).where(AffiliateProfile.affiliate_code == code)
        if for_update:
            # Serializes balance changes on one profile (no-op on SQLite); the
            # re-read overwrites figures already loaded into this session
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_profile_by_code(self, code: str, for_update: bool = False) -> AffiliateProfile:
        profile = await self.find_profile_by_code(code, for_update=for_update)
        if not profile:
            raise AffiliateNotFoundError(code)
        return profile

    async def get_profile_by_id(self, profile_id: int) -> AffiliateProfile:
        profile = await self.session.get(AffiliateProfile, profile_id)
        if not profile:
            raise AffiliateNotFoundError(profile_id)
        return profile

    async def get_profile_by_user(self, user_id: int) -> Optional[AffiliateProfile]:
        result = await self.session.execute(
            select(AffiliateProfile).where(AffiliateProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_balance_by_code(self, code: str) -> Decimal:
        profile = await self.get_profile_by_code(code)
        return to_money(profile.balance)

    async def get_balance_by_id(self, profile_id: int) -> Decimal:
        profile = await self.get_profile_by_id(profile_id)
        return to_money(profile.balance)

    async def get_open_withdrawals_total(self, code: str) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Withdrawal.amount), 0)).where(
                Withdrawal.affiliate_code == code,
                Withdrawal.status.in_(OPEN_WITHDRAWAL_STATUSES),
            )
        )
        return to_money(result.scalar())

    async def get_available_balance(self, code: str) -> Decimal:
        """Balance minus withdrawals that are requested but not yet paid out."""
        profile = await self.get_profile_by_code(code)
        return to_money(profile.balance) - await self.get_open_withdrawals_total(code)

    # --- Ledger events (caller commits) ---

    async def credit_commission(self, code: str, amount: Decimal, kind: str) -> AffiliateProfile:
        """Credit a settled commission to the affiliate's balance and earnings."""
        profile = await self.get_profile_by_code(code, for_update=True)
        amount = to_money(amount)
        profile.balance = to_money(profile.balance) + amount
        profile.total_earnings = to_money(profile.total_earnings) + amount
        if kind == SALES:
            profile.commission_earnings = to_money(profile.commission_earnings) + amount
        elif kind == REFERRAL:
            profile.referals_earnings = to_money(profile.referals_earnings) + amount
        else:
            raise ValueError(f"Unknown commission kind: {kind}")
        profile.updated_at = datetime.now()
        logger.info("Commission credited", affiliate_code=code, amount=str(amount), kind=kind)
        return profile

    async def debit_withdrawal(self, code: str, amount: Decimal) -> AffiliateProfile:
        """Take a paid-out withdrawal off the balance."""
        profile = await self.get_profile_by_code(code, for_update=True)
        amount = to_money(amount)
        balance = to_money(profile.balance)
        if amount > balance:
            raise InsufficientBalanceError(balance, amount)
        profile.balance = balance - amount
        profile.total_withdrawals = to_money(profile.total_withdrawals) + amount
        profile.updated_at = datetime.now()
        logger.info("Withdrawal debited", affiliate_code=code, amount=str(amount))
        return profile

    # --- Reconciliation ---

    async def _ledger_totals(self, code: str) -> Dict[str, Decimal]:
        sales = await self.session.execute(
            select(func.coalesce(func.sum(SalesCommission.commission_amount), 0)).where(
                SalesCommission.affiliate_code == code,
                SalesCommission.status.in_(PAID_STATUSES),
            )
        )
        referrals = await self.session.execute(
            select(func.coalesce(func.sum(ReferralCommission.amount), 0)).where(
                ReferralCommission.referer_code == code,
                ReferralCommission.status.in_(PAID_STATUSES),
            )
        )
        withdrawn = await self.session.execute(
            select(func.coalesce(func.sum(Withdrawal.amount), 0)).where(
                Withdrawal.affiliate_code == code,
                Withdrawal.status == "completed",
            )
        )
        commission_earnings = to_money(sales.scalar())
        referals_earnings = to_money(referrals.scalar())
        total_withdrawals = to_money(withdrawn.scalar())
        total_earnings = commission_earnings + referals_earnings
        return {
            "commission_earnings": commission_earnings,
            "referals_earnings": referals_earnings,
            "total_earnings": total_earnings,
            "total_withdrawals": total_withdrawals,
            "balance": total_earnings - total_withdrawals,
        }

    async def reconcile_profile(self, code: str) -> bool:
        """Bring one profile's aggregates in line with its ledgers. Returns True if anything changed."""
        profile = await self.get_profile_by_code(code, for_update=True)
        expected = await self._ledger_totals(code)
        drift = {
            field: (str(to_money(getattr(profile, field))), str(value))
            for field, value in expected.items()
            if to_money(getattr(profile, field)) != value
        }
        if not drift:
            return False
        for field, value in expected.items():
            setattr(profile, field, value)
        profile.updated_at = datetime.now()
        logger.warning("Affiliate balance drift corrected", affiliate_code=code, drift=drift)
        return True

    async def reconcile_all(self) -> int:
        """Reconcile every profile and commit. Returns how many were corrected."""
        result = await self.session.execute(select(AffiliateProfile.affiliate_code))
        fixed = 0
        for code in result.scalars().all():
            if await self.reconcile_profile(code):
                fixed += 1
        await self.session.commit()
        return fixed
