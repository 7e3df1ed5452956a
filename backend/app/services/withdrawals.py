"""
Withdrawals: affiliates asking for their balance to be paid out.

A request holds part of the balance while it is pending or processing
(see BalanceService.get_available_balance); the profile is only debited
when the withdrawal is marked completed.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import (
    WITHDRAWAL_STATUSES,
    WITHDRAWAL_TRANSITIONS,
    ZERO,
    to_money,
)
from backend.app.core.exceptions import ServiceError, check_transition
from backend.app.core.logging import get_logger
from backend.app.core.metrics import withdrawals_requested_total, withdrawals_completed_total
from backend.app.models.withdrawal import Withdrawal
from backend.app.services.balances import BalanceService, InsufficientBalanceError

logger = get_logger(__name__)


class WithdrawalServiceError(ServiceError):
    """Base exception for withdrawal errors."""


class WithdrawalNotFoundError(WithdrawalServiceError):
    def __init__(self, withdrawal_id: int):
        super().__init__(f"Withdrawal {withdrawal_id} not found", 404)


class WithdrawalAccessDeniedError(WithdrawalServiceError):
    def __init__(self, withdrawal_id: int):
        super().__init__(f"Withdrawal {withdrawal_id} does not belong to you", 403)


def withdrawal_to_dict(w: Withdrawal) -> Dict[str, Any]:
    return {
        "id": w.id,
        "affiliate_code": w.affiliate_code,
        "amount": float(to_money(w.amount)),
        "phone_number": w.phone_number,
        "status": w.status,
        "reason_of_status": w.reason_of_status,
        "created_at": w.created_at.isoformat() if w.created_at else None,
        "processed_at": w.processed_at.isoformat() if w.processed_at else None,
        "processed_by": w.processed_by,
    }


def withdrawal_to_payment_view(w: Withdrawal) -> Dict[str, Any]:
    processed_at = w.processed_at.isoformat() if w.processed_at else None
    return {
        "id": w.id,
        "payment_id": f"WD-{w.id}",
        "affiliate_code": w.affiliate_code,
        "amount": float(to_money(w.amount)),
        "status": w.status or "pending",
        "created_at": w.created_at.isoformat() if w.created_at else None,
        "processed_at": processed_at,
        "type": "withdrawal",
        "details": {
            "phone_number": w.phone_number,
            "reason_of_status": w.reason_of_status,
            "processed_at": processed_at,
            "processed_by": w.processed_by,
        },
    }


class WithdrawalService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.balances = BalanceService(session)

    async def create_withdrawal(self, code: str, amount: Decimal, phone_number: str) -> Dict[str, Any]:
        """Open a pending withdrawal, refusing anything above the available balance."""
        amount = to_money(amount)
        if amount <= ZERO:
            raise WithdrawalServiceError("Withdrawal amount must be greater than zero", 400)
        # Locks the profile row so two requests cannot both spend the same balance
        profile = await self.balances.get_profile_by_code(code, for_update=True)
        available = to_money(profile.balance) - await self.balances.get_open_withdrawals_total(code)
        if amount > available:
            raise InsufficientBalanceError(available, amount)

        withdrawal = Withdrawal(
            affiliate_code=code,
            amount=amount,
            phone_number=phone_number,
            status="pending",
        )
        self.session.add(withdrawal)
        await self.session.commit()
        await self.session.refresh(withdrawal)
        withdrawals_requested_total.inc()
        logger.info("Withdrawal requested", withdrawal_id=withdrawal.id, affiliate_code=code, amount=str(amount))
        return withdrawal_to_dict(withdrawal)

    async def get_withdrawal(self, withdrawal_id: int, for_update: bool = False) -> Withdrawal:
        withdrawal = await self.session.get(
            Withdrawal, withdrawal_id, with_for_update=for_update, populate_existing=for_update
        )
        if not withdrawal:
            raise WithdrawalNotFoundError(withdrawal_id)
        return withdrawal

    async def get_withdrawal_history(self, code: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(Withdrawal)
            .where(Withdrawal.affiliate_code == code)
            .order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return [withdrawal_to_dict(w) for w in result.scalars().all()]

    async def get_all_withdrawals(
        self,
        affiliate_code: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Admin list in the shared payment view shape."""
        query = select(Withdrawal)
        if affiliate_code:
            query = query.where(Withdrawal.affiliate_code == affiliate_code)
        if status:
            query = query.where(Withdrawal.status == status)
        result = await self.session.execute(
            query.order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc()).offset(offset).limit(limit)
        )
        return [withdrawal_to_payment_view(w) for w in result.scalars().all()]

    async def update_status(
        self,
        withdrawal_id: int,
        new_status: str,
        reason: Optional[str] = None,
        processed_by: Optional[str] = None,
    ) -> Withdrawal:
        """
        Move a withdrawal along its lifecycle:
        pending -> processing | completed | failed | cancelled,
        processing -> completed | failed.
        Completing it debits the affiliate's balance.
        """
        if new_status not in WITHDRAWAL_STATUSES:
            raise WithdrawalServiceError(f"Invalid status: {new_status}", 400)
        withdrawal = await self.get_withdrawal(withdrawal_id, for_update=True)
        check_transition("withdrawal", WITHDRAWAL_TRANSITIONS, withdrawal.status, new_status)

        if new_status == "completed":
            await self.balances.debit_withdrawal(withdrawal.affiliate_code, withdrawal.amount)

        old_status = withdrawal.status
        withdrawal.status = new_status
        withdrawal.reason_of_status = reason or withdrawal.reason_of_status
        withdrawal.processed_at = datetime.now()
        withdrawal.processed_by = processed_by
        await self.session.commit()
        await self.session.refresh(withdrawal)
        if new_status == "completed":
            withdrawals_completed_total.inc()
        logger.info(
            "Withdrawal status changed",
            withdrawal_id=withdrawal_id,
            affiliate_code=withdrawal.affiliate_code,
            old_status=old_status,
            new_status=new_status,
            processed_by=processed_by,
        )
        return withdrawal

    async def cancel_withdrawal(
        self,
        withdrawal_id: int,
        reason: Optional[str] = None,
        cancelled_by: Optional[str] = None,
        code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Cancel a pending withdrawal. With `code`, the withdrawal must belong to that affiliate."""
        withdrawal = await self.get_withdrawal(withdrawal_id)
        if code is not None and withdrawal.affiliate_code != code:
            raise WithdrawalAccessDeniedError(withdrawal_id)
        if withdrawal.status != "pending":
            raise WithdrawalServiceError("Only pending withdrawals can be cancelled", 400)
        updated = await self.update_status(
            withdrawal_id, "cancelled", reason=reason or "Cancelled by user", processed_by=cancelled_by
        )
        return withdrawal_to_dict(updated)

    async def get_pending_count(self, code: Optional[str] = None) -> int:
        query = select(func.count(Withdrawal.id)).where(Withdrawal.status == "pending")
        if code:
            query = query.where(Withdrawal.affiliate_code == code)
        return int((await self.session.execute(query)).scalar() or 0)

    async def get_total_withdrawn(self, code: str) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Withdrawal.amount), 0)).where(
                Withdrawal.affiliate_code == code,
                Withdrawal.status == "completed",
            )
        )
        return to_money(result.scalar())

    async def get_summary(self, code: str) -> Dict[str, Any]:
        """Balance figures for the withdrawals page."""
        profile = await self.balances.get_profile_by_code(code)
        held = await self.balances.get_open_withdrawals_total(code)
        return {
            "balance": float(to_money(profile.balance)),
            "available_balance": float(to_money(profile.balance) - held),
            "pending_withdrawals": float(held),
            "pending_count": await self.get_pending_count(code),
            "total_withdrawn": float(await self.get_total_withdrawn(code)),
        }
