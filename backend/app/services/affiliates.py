"""
Affiliate programme: code validation, registration and activation,
and the admin view of affiliates.
"""
import secrets
import string
from typing import Optional, Dict, Any, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import AFFILIATE_CODE_PREFIX, AFFILIATE_CODE_LENGTH, to_money
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import affiliates_activated_total, commissions_accrued_total
from backend.app.core.settings import get_settings
from backend.app.models.affiliate import AffiliateProfile
from backend.app.models.commission import ReferralCommission
from backend.app.models.payment import RegistrationPayment
from backend.app.models.user import UserProfile
from backend.app.services.balances import AffiliateNotFoundError, BalanceService, profile_to_dict

logger = get_logger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


class AffiliateServiceError(ServiceError):
    """Base exception for affiliate programme errors."""


class InvalidAffiliateCodeError(AffiliateServiceError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class AlreadyAffiliateError(AffiliateServiceError):
    def __init__(self):
        super().__init__("User is already an affiliate", 409)


class RegistrationPendingError(AffiliateServiceError):
    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Registration payment {payment_id} is already pending", 409)


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class AffiliateService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.balances = BalanceService(session)

    async def validate_affiliate_code(self, code: Optional[str]) -> Dict[str, Any]:
        """
        Check that a code belongs to an existing affiliate.

        Returns {"valid": bool, "message": str, "affiliate_code": str | None};
        never raises for an unknown code so the join form can show the message.
        """
        code = normalize_code(code)
        if not code:
            return {"valid": False, "message": "Affiliate code is required", "affiliate_code": None}
        profile = await self.balances.find_profile_by_code(code)
        if not profile:
            return {
                "valid": False,
                "message": "Invalid affiliate code. Please check with your referrer.",
                "affiliate_code": None,
            }
        return {"valid": True, "message": "Affiliate code is valid", "affiliate_code": profile.affiliate_code}

    async def require_valid_code(self, code: Optional[str]) -> str:
        result = await self.validate_affiliate_code(code)
        if not result["valid"]:
            raise InvalidAffiliateCodeError(result["message"])
        return result["affiliate_code"]

    async def get_affiliate_status(self, user: UserProfile) -> Dict[str, Any]:
        profile = await self.balances.get_profile_by_user(user.id)
        pending = await self._pending_registration(user.id)
        return {
            "is_affiliate": bool(user.is_affiliate) and profile is not None,
            "affiliate_code": profile.affiliate_code if profile else None,
            "is_admin": bool(user.is_admin),
            "pending_registration_id": pending.id if pending else None,
        }

    async def get_code_for_user(self, user: UserProfile) -> str:
        """Affiliate code of the current user; 403 if they have not joined."""
        profile = await self.balances.get_profile_by_user(user.id)
        if not profile:
            raise AffiliateServiceError("User is not an affiliate", 403)
        return profile.affiliate_code

    async def _pending_registration(self, user_id: int) -> Optional[RegistrationPayment]:
        result = await self.session.execute(
            select(RegistrationPayment)
            .where(RegistrationPayment.user_id == user_id, RegistrationPayment.status == "pending")
            .order_by(RegistrationPayment.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def start_registration(
        self,
        user: UserProfile,
        phone_number: str,
        referer_code: Optional[str] = None,
    ) -> RegistrationPayment:
        """
        Record the join fee as a pending registration payment.

        The affiliate profile is created only when an admin marks the
        payment completed (see activate_affiliate).
        """
        if user.is_affiliate or await self.balances.get_profile_by_user(user.id):
            raise AlreadyAffiliateError()
        pending = await self._pending_registration(user.id)
        if pending:
            raise RegistrationPendingError(pending.id)
        referer = await self.require_valid_code(referer_code) if normalize_code(referer_code) else None

        payment = RegistrationPayment(
            user_id=user.id,
            amount=to_money(get_settings().AFFILIATE_JOIN_FEE),
            status="pending",
            phone_number=phone_number,
            referer_code=referer,
        )
        self.session.add(payment)
        await self.session.commit()
        await self.session.refresh(payment)
        logger.info("Affiliate registration started", user_id=user.id, payment_id=payment.id, referer=referer)
        return payment

    async def generate_affiliate_code(self) -> str:
        """AF + 6 upper-case letters/digits, unique among profiles."""
        while True:
            suffix = ''.join(secrets.choice(CODE_ALPHABET) for _ in range(AFFILIATE_CODE_LENGTH))
            code = f"{AFFILIATE_CODE_PREFIX}{suffix}"
            result = await self.session.execute(
                select(AffiliateProfile.id).where(AffiliateProfile.affiliate_code == code)
            )
            if not result.scalar_one_or_none():
                return code

    async def activate_affiliate(self, payment: RegistrationPayment) -> AffiliateProfile:
        """
        Create the affiliate profile for a completed registration payment.

        Flags the user as affiliate and, when the payment names a referer,
        records a pending referral commission for them. Safe to call twice:
        an existing profile is returned unchanged. Caller commits.
        """
        existing = await self.balances.get_profile_by_user(payment.user_id)
        if existing:
            return existing

        user = await self.session.get(UserProfile, payment.user_id)
        if not user:
            raise AffiliateServiceError(f"User {payment.user_id} not found", 404)

        referer = payment.referer_code
        if referer and not await self.balances.find_profile_by_code(referer):
            # Referer vanished between join and payment; activate without the referral
            logger.warning("Referer code no longer exists", payment_id=payment.id, referer=referer)
            referer = None

        profile = AffiliateProfile(
            user_id=user.id,
            affiliate_code=await self.generate_affiliate_code(),
            referer=referer,
        )
        self.session.add(profile)
        user.is_affiliate = True
        await self.session.flush()

        if referer:
            commission = ReferralCommission(
                referer_code=referer,
                new_affiliate_code=profile.affiliate_code,
                amount=to_money(get_settings().REFERRAL_COMMISSION),
                status="pending",
                payment_id=str(payment.id),
            )
            self.session.add(commission)
            commissions_accrued_total.labels(kind="referral").inc()

        affiliates_activated_total.inc()
        logger.info(
            "Affiliate activated",
            user_id=user.id,
            affiliate_code=profile.affiliate_code,
            referer=referer,
        )
        return profile

    # --- Admin ---

    async def _referral_counts(self) -> Dict[str, int]:
        result = await self.session.execute(
            select(AffiliateProfile.referer, func.count(AffiliateProfile.id))
            .where(AffiliateProfile.referer.is_not(None))
            .group_by(AffiliateProfile.referer)
        )
        return {row[0]: int(row[1]) for row in result.all()}

    def _admin_row(self, profile: AffiliateProfile, user_name: Optional[str], referrals: int) -> Dict[str, Any]:
        data = profile_to_dict(profile)
        data.update({
            "user_name": user_name or "Unknown User",
            "total_referrals": referrals,
            "total_earned": data["total_earnings"],
        })
        return data

    async def list_affiliates(self) -> List[Dict[str, Any]]:
        """All affiliates, newest first, with user name and number of recruits."""
        result = await self.session.execute(
            select(AffiliateProfile, UserProfile.name)
            .outerjoin(UserProfile, UserProfile.id == AffiliateProfile.user_id)
            .order_by(AffiliateProfile.created_at.desc(), AffiliateProfile.id.desc())
        )
        counts = await self._referral_counts()
        return [
            self._admin_row(profile, name, counts.get(profile.affiliate_code, 0))
            for profile, name in result.all()
        ]

    async def get_affiliate(self, profile_id: int) -> Dict[str, Any]:
        result = await self.session.execute(
            select(AffiliateProfile, UserProfile.name)
            .outerjoin(UserProfile, UserProfile.id == AffiliateProfile.user_id)
            .where(AffiliateProfile.id == profile_id)
        )
        row = result.first()
        if not row:
            raise AffiliateNotFoundError(profile_id)
        profile, name = row
        count = await self.session.execute(
            select(func.count(AffiliateProfile.id)).where(AffiliateProfile.referer == profile.affiliate_code)
        )
        return self._admin_row(profile, name, int(count.scalar() or 0))

    async def get_affiliate_referrals(self, code: str) -> List[Dict[str, Any]]:
        """Affiliates recruited by `code`, newest first."""
        result = await self.session.execute(
            select(AffiliateProfile, UserProfile.name)
            .outerjoin(UserProfile, UserProfile.id == AffiliateProfile.user_id)
            .where(AffiliateProfile.referer == code)
            .order_by(AffiliateProfile.created_at.desc(), AffiliateProfile.id.desc())
        )
        return [
            {
                "id": profile.id,
                "affiliate_code": profile.affiliate_code,
                "user_name": name or "Unknown User",
                "created_at": profile.created_at.isoformat() if profile.created_at else None,
            }
            for profile, name in result.all()
        ]
