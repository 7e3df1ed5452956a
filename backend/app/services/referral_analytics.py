"""Referral programme analytics: join fees in, referral commissions out."""
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import PAID_STATUSES, ZERO, to_money
from backend.app.core.settings import get_settings
from backend.app.models.affiliate import AffiliateProfile
from backend.app.models.commission import ReferralCommission
from backend.app.services.sales_analytics import _months_back


class ReferralAnalyticsService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.join_fee = to_money(get_settings().AFFILIATE_JOIN_FEE)

    async def get_total_affiliates(self) -> int:
        result = await self.session.execute(select(func.count(AffiliateProfile.id)))
        return int(result.scalar() or 0)

    async def get_total_money_out(self) -> Decimal:
        """Referral commissions actually paid."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(ReferralCommission.amount), 0)).where(
                ReferralCommission.status.in_(PAID_STATUSES)
            )
        )
        return to_money(result.scalar())

    async def get_top_performers(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Referers ranked by number of recruits."""
        result = await self.session.execute(
            select(ReferralCommission.referer_code, ReferralCommission.amount, ReferralCommission.status)
        )
        performers: Dict[str, Dict[str, Any]] = {}
        for code, amount, status in result.all():
            entry = performers.setdefault(code, {"total_referrals": 0, "total_earnings": ZERO})
            entry["total_referrals"] += 1
            if status in PAID_STATUSES:
                entry["total_earnings"] += to_money(amount)
        if not performers:
            return []

        profiles_result = await self.session.execute(
            select(AffiliateProfile).where(AffiliateProfile.affiliate_code.in_(performers.keys()))
        )
        profiles = {p.affiliate_code: p for p in profiles_result.scalars().all()}

        rows = []
        for code, stats in performers.items():
            profile = profiles.get(code)
            rows.append({
                "affiliate_code": code,
                "total_referrals": stats["total_referrals"],
                "total_earnings": float(stats["total_earnings"]),
                "commission_earnings": float(to_money(profile.commission_earnings)) if profile else 0.0,
                "referrals_earnings": float(to_money(profile.referals_earnings)) if profile else 0.0,
            })
        rows.sort(key=lambda r: (-r["total_referrals"], r["affiliate_code"]))
        return rows[:limit]

    async def get_monthly_trends(self, months: int = 12, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Per month: join fees from new affiliates, commissions paid, net, new affiliates."""
        today = today or date.today()
        since = datetime.combine(_months_back(today, months - 1), time.min)

        buckets: Dict[str, Dict[str, Any]] = {}

        def bucket(key: str) -> Dict[str, Any]:
            return buckets.setdefault(key, {"money_in": ZERO, "money_out": ZERO, "new_affiliates": 0})

        affiliates = await self.session.execute(
            select(AffiliateProfile.created_at).where(AffiliateProfile.created_at >= since)
        )
        for (created_at,) in affiliates.all():
            b = bucket(created_at.strftime("%Y-%m"))
            b["new_affiliates"] += 1
            b["money_in"] += self.join_fee

        commissions = await self.session.execute(
            select(ReferralCommission.amount, ReferralCommission.status, ReferralCommission.created_at)
            .where(ReferralCommission.created_at >= since)
        )
        for amount, status, created_at in commissions.all():
            b = bucket(created_at.strftime("%Y-%m"))
            if status in PAID_STATUSES:
                b["money_out"] += to_money(amount)

        return [
            {
                "month": month,
                "money_in": float(b["money_in"]),
                "money_out": float(b["money_out"]),
                "net_profit": float(b["money_in"] - b["money_out"]),
                "new_affiliates": b["new_affiliates"],
            }
            for month, b in sorted(buckets.items())
        ][-months:]

    async def get_recent_commissions(self, limit: int = 20) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(ReferralCommission)
            .order_by(ReferralCommission.created_at.desc(), ReferralCommission.id.desc())
            .limit(limit)
        )
        return [
            {
                "id": r.id,
                "referer_code": r.referer_code,
                "new_affiliate_code": r.new_affiliate_code,
                "amount": float(to_money(r.amount)),
                "status": r.status or "pending",
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in result.scalars().all()
        ]

    async def get_analytics(self) -> Dict[str, Any]:
        total_affiliates = await self.get_total_affiliates()
        money_in = self.join_fee * total_affiliates
        money_out = await self.get_total_money_out()
        return {
            "total_affiliates": total_affiliates,
            "total_money_in": float(money_in),
            "total_money_out": float(money_out),
            "net_profit": float(money_in - money_out),
            "top_performers": await self.get_top_performers(),
            "monthly_trends": await self.get_monthly_trends(),
            "recent_commissions": await self.get_recent_commissions(),
        }
