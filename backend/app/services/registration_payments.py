"""Registration payments: the affiliate join fee."""
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import REGISTRATION_STATUSES, REGISTRATION_TRANSITIONS, to_money
from backend.app.core.exceptions import ServiceError, check_transition
from backend.app.core.logging import get_logger
from backend.app.models.payment import RegistrationPayment
from backend.app.models.user import UserProfile
from backend.app.services.affiliates import AffiliateService

logger = get_logger(__name__)


class RegistrationPaymentServiceError(ServiceError):
    """Base exception for registration payment errors."""


class RegistrationPaymentNotFoundError(RegistrationPaymentServiceError):
    def __init__(self, payment_id: int):
        super().__init__(f"Registration payment {payment_id} not found", 404)


def payment_to_dict(p: RegistrationPayment) -> Dict[str, Any]:
    return {
        "id": p.id,
        "user_id": p.user_id,
        "amount": float(to_money(p.amount)),
        "status": p.status,
        "phone_number": p.phone_number,
        "referer_code": p.referer_code,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "completed_at": p.completed_at.isoformat() if p.completed_at else None,
    }


def payment_to_view(p: RegistrationPayment) -> Dict[str, Any]:
    amount = float(to_money(p.amount))
    created_at = p.created_at.isoformat() if p.created_at else None
    completed_at = p.completed_at.isoformat() if p.completed_at else None
    return {
        "id": p.id,
        "payment_id": f"REG-{p.id}",
        "affiliate_code": p.referer_code or "N/A",
        "amount": amount,
        "status": p.status or "pending",
        "created_at": created_at,
        "completed_at": completed_at,
        "type": "registration",
        "details": {
            "user_id": p.user_id,
            "phone_number": p.phone_number,
            "referer_code": p.referer_code,
            "amount": amount,
            "completed_at": completed_at,
            "created_at": created_at,
        },
    }


class RegistrationPaymentService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_payment(
        self,
        user: UserProfile,
        phone_number: str,
        referer_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        payment = await AffiliateService(self.session).start_registration(user, phone_number, referer_code)
        return payment_to_dict(payment)

    async def get_payment(self, payment_id: int, for_update: bool = False) -> RegistrationPayment:
        payment = await self.session.get(
            RegistrationPayment, payment_id, with_for_update=for_update, populate_existing=for_update
        )
        if not payment:
            raise RegistrationPaymentNotFoundError(payment_id)
        return payment

    async def get_payments_by_user(self, user_id: int) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(RegistrationPayment)
            .where(RegistrationPayment.user_id == user_id)
            .order_by(RegistrationPayment.created_at.desc(), RegistrationPayment.id.desc())
        )
        return [payment_to_dict(p) for p in result.scalars().all()]

    async def list_all(
        self,
        status: Optional[str] = None,
        referer_code: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = select(RegistrationPayment)
        if status:
            query = query.where(RegistrationPayment.status == status)
        if referer_code:
            query = query.where(RegistrationPayment.referer_code == referer_code)
        if user_id is not None:
            query = query.where(RegistrationPayment.user_id == user_id)
        result = await self.session.execute(
            query.order_by(RegistrationPayment.created_at.desc(), RegistrationPayment.id.desc())
        )
        return [payment_to_view(p) for p in result.scalars().all()]

    async def update_status(self, payment_id: int, new_status: str) -> Dict[str, Any]:
        """
        pending -> completed activates the affiliate (profile, code and the
        referer's commission); pending -> failed just closes the payment.
        """
        if new_status not in REGISTRATION_STATUSES:
            raise RegistrationPaymentServiceError(f"Invalid status: {new_status}", 400)
        payment = await self.get_payment(payment_id, for_update=True)
        check_transition("registration payment", REGISTRATION_TRANSITIONS, payment.status, new_status)

        payment.status = new_status
        affiliate_code = None
        if new_status == "completed":
            payment.completed_at = datetime.now()
            profile = await AffiliateService(self.session).activate_affiliate(payment)
            affiliate_code = profile.affiliate_code
        await self.session.commit()
        await self.session.refresh(payment)
        logger.info(
            "Registration payment status changed",
            payment_id=payment_id,
            status=new_status,
            affiliate_code=affiliate_code,
        )
        view = payment_to_view(payment)
        view["new_affiliate_code"] = affiliate_code
        return view
