"""Referral commissions: the flat fee a referer earns per recruited affiliate."""
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import (
    COMMISSION_STATUSES,
    COMMISSION_TRANSITIONS,
    PAID_STATUSES,
    ZERO,
    format_money,
    to_money,
)
from backend.app.core.exceptions import ServiceError, check_transition
from backend.app.core.logging import get_logger
from backend.app.core.metrics import commissions_accrued_total, commissions_settled_total
from backend.app.models.commission import ReferralCommission
from backend.app.services.balances import BalanceService, REFERRAL, profile_to_dict

logger = get_logger(__name__)


class ReferralCommissionServiceError(ServiceError):
    """Base exception for referral commission errors."""


class ReferralCommissionNotFoundError(ReferralCommissionServiceError):
    def __init__(self, commission_id: int):
        super().__init__(f"Referral commission {commission_id} not found", 404)


def referral_to_payment_view(r: ReferralCommission) -> Dict[str, Any]:
    amount = float(to_money(r.amount))
    created_at = r.created_at.isoformat() if r.created_at else None
    return {
        "id": r.id,
        "payment_id": f"RC-{r.id}",
        "affiliate_code": r.referer_code,
        "amount": amount,
        "status": r.status or "pending",
        "created_at": created_at,
        "type": "referral_commission",
        "details": {
            "referer_code": r.referer_code,
            "new_affiliate_code": r.new_affiliate_code,
            "invitee_code": r.new_affiliate_code,
            "invitee_name": f"Affiliate {r.new_affiliate_code}",
            "commission_amount": amount,
            "invited_at": created_at,
            "payment_id": r.payment_id,
        },
    }


class ReferralCommissionService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # --- Affiliate dashboard ---

    async def get_affiliate_earnings(self, code: str) -> Dict[str, Any]:
        profile = await BalanceService(self.session).get_profile_by_code(code)
        return profile_to_dict(profile)

    async def get_referral_commissions(self, code: str, status: Optional[str] = None) -> List[ReferralCommission]:
        query = select(ReferralCommission).where(ReferralCommission.referer_code == code)
        if status:
            query = query.where(ReferralCommission.status == status)
        result = await self.session.execute(
            query.order_by(ReferralCommission.created_at.desc(), ReferralCommission.id.desc())
        )
        return list(result.scalars().all())

    async def get_referral_stats(self, code: str) -> Dict[str, Any]:
        rows = await self.get_referral_commissions(code)
        completed = [r for r in rows if r.status in PAID_STATUSES]
        pending = [r for r in rows if r.status == "pending"]
        return {
            "total_referrals": len(rows),
            "completed_referrals": len(completed),
            "pending_referrals": len(pending),
            "total_earnings": float(sum((to_money(r.amount) for r in completed), ZERO)),
            "pending_earnings": float(sum((to_money(r.amount) for r in pending), ZERO)),
        }

    async def get_formatted_referrals(self, code: str) -> List[Dict[str, Any]]:
        return [
            {
                "id": r.id,
                "code": r.new_affiliate_code,
                "date": r.created_at.strftime("%Y-%m-%d") if r.created_at else None,
                "amount": format_money(r.amount),
                "status": (r.status or "pending").capitalize(),
                "payment_id": r.payment_id,
            }
            for r in await self.get_referral_commissions(code)
        ]

    async def get_dashboard_summary(self, code: str) -> Dict[str, Any]:
        """Profile money figures plus referral stats for the dashboard header."""
        profile = await self.get_affiliate_earnings(code)
        stats = await self.get_referral_stats(code)
        return {
            "affiliate_code": code,
            "balance": profile["balance"],
            "total_earnings": profile["total_earnings"],
            "referrals_earnings": profile["referals_earnings"],
            "commission_earnings": profile["commission_earnings"],
            "total_withdrawals": profile["total_withdrawals"],
            "total_referrals": stats["total_referrals"],
            "completed_referrals": stats["completed_referrals"],
            "pending_referrals": stats["pending_referrals"],
            "pending_referral_earnings": stats["pending_earnings"],
        }

    # --- Admin ---

    async def get_commission(self, commission_id: int, for_update: bool = False) -> ReferralCommission:
        commission = await self.session.get(
            ReferralCommission, commission_id, with_for_update=for_update, populate_existing=for_update
        )
        if not commission:
            raise ReferralCommissionNotFoundError(commission_id)
        return commission

    async def list_all(
        self,
        status: Optional[str] = None,
        referer_code: Optional[str] = None,
        new_affiliate_code: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query = select(ReferralCommission)
        if status:
            query = query.where(ReferralCommission.status == status)
        if referer_code:
            query = query.where(ReferralCommission.referer_code == referer_code)
        if new_affiliate_code:
            query = query.where(ReferralCommission.new_affiliate_code == new_affiliate_code)
        result = await self.session.execute(
            query.order_by(ReferralCommission.created_at.desc(), ReferralCommission.id.desc())
        )
        return [referral_to_payment_view(r) for r in result.scalars().all()]

    async def create(self, referer_code: str, new_affiliate_code: str, amount, payment_id: Optional[str] = None) -> Dict[str, Any]:
        """Record a referral commission by hand (pending)."""
        balances = BalanceService(self.session)
        await balances.get_profile_by_code(referer_code)
        await balances.get_profile_by_code(new_affiliate_code)
        if referer_code == new_affiliate_code:
            raise ReferralCommissionServiceError("An affiliate cannot refer themselves", 400)
        existing = await self.session.execute(
            select(ReferralCommission.id).where(ReferralCommission.new_affiliate_code == new_affiliate_code)
        )
        if existing.scalar_one_or_none():
            raise ReferralCommissionServiceError(
                f"Referral commission for {new_affiliate_code} already exists", 409
            )
        commission = ReferralCommission(
            referer_code=referer_code,
            new_affiliate_code=new_affiliate_code,
            amount=to_money(amount),
            status="pending",
            payment_id=payment_id,
        )
        self.session.add(commission)
        await self.session.commit()
        await self.session.refresh(commission)
        commissions_accrued_total.labels(kind="referral").inc()
        return referral_to_payment_view(commission)

    async def update_status(self, commission_id: int, new_status: str) -> Dict[str, Any]:
        """pending -> completed credits the referer; pending -> cancelled closes the row."""
        if new_status not in COMMISSION_STATUSES:
            raise ReferralCommissionServiceError(f"Invalid status: {new_status}", 400)
        commission = await self.get_commission(commission_id, for_update=True)
        check_transition("referral commission", COMMISSION_TRANSITIONS, commission.status, new_status)

        commission.status = new_status
        if new_status == "completed":
            await BalanceService(self.session).credit_commission(
                commission.referer_code, commission.amount, REFERRAL
            )
        await self.session.commit()
        await self.session.refresh(commission)
        commissions_settled_total.labels(kind="referral", status=new_status).inc()
        logger.info(
            "Referral commission settled",
            commission_id=commission_id,
            referer_code=commission.referer_code,
            status=new_status,
        )
        return referral_to_payment_view(commission)
