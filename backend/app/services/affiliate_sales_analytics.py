"""Analytics over affiliate-attributed sales (the sales_commission ledger)."""
from datetime import date, datetime, time
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import PAID_STATUSES, ZERO, to_money
from backend.app.models.commission import SalesCommission
from backend.app.models.order import OrderItem
from backend.app.services.sales_analytics import _months_back


class AffiliateSalesAnalyticsService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _live_commissions(self) -> List[SalesCommission]:
        """Every commission that was not cancelled."""
        result = await self.session.execute(
            select(SalesCommission).where(SalesCommission.status != "cancelled")
        )
        return list(result.scalars().all())

    async def get_totals(self) -> Dict[str, Any]:
        revenue = paid = pending = ZERO
        orders = set()
        for c in await self._live_commissions():
            revenue += to_money(c.sale_amount)
            if c.status in PAID_STATUSES:
                paid += to_money(c.commission_amount)
            elif c.status == "pending":
                pending += to_money(c.commission_amount)
            orders.add(c.order_id)
        return {
            "total_sales_revenue": float(revenue),
            "total_commission_paid": float(paid),
            "total_commission_pending": float(pending),
            "net_revenue": float(revenue - paid),
            "total_orders": len(orders),
        }

    async def get_top_affiliates(self, limit: int = 10) -> List[Dict[str, Any]]:
        affiliates: Dict[str, Dict[str, Any]] = {}
        for c in await self._live_commissions():
            entry = affiliates.setdefault(c.affiliate_code, {
                "total_sales": ZERO,
                "orders": set(),
                "total_commission": ZERO,
                "commission_paid": ZERO,
                "commission_pending": ZERO,
            })
            entry["total_sales"] += to_money(c.sale_amount)
            entry["orders"].add(c.order_id)
            entry["total_commission"] += to_money(c.commission_amount)
            if c.status in PAID_STATUSES:
                entry["commission_paid"] += to_money(c.commission_amount)
            elif c.status == "pending":
                entry["commission_pending"] += to_money(c.commission_amount)

        rows = [
            {
                "affiliate_code": code,
                "total_sales": float(e["total_sales"]),
                "total_orders": len(e["orders"]),
                "total_commission": float(e["total_commission"]),
                "commission_paid": float(e["commission_paid"]),
                "commission_pending": float(e["commission_pending"]),
                "average_order_value": float(to_money(e["total_sales"] / len(e["orders"]))) if e["orders"] else 0.0,
            }
            for code, e in affiliates.items()
        ]
        rows.sort(key=lambda r: (-r["total_sales"], r["affiliate_code"]))
        return rows[:limit]

    async def get_top_products(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Affiliate-attributed order lines grouped by product, by revenue."""
        result = await self.session.execute(
            select(OrderItem).where(OrderItem.affiliate_code.is_not(None))
        )
        products: Dict[int, Dict[str, Any]] = {}
        for item in result.scalars().all():
            entry = products.setdefault(item.product_id, {
                "product_id": item.product_id,
                "product_name": item.product_name or "Unknown Product",
                "product_sku": item.product_sku,
                "total_quantity_sold": 0,
                "total_revenue": ZERO,
                "total_commission": ZERO,
                "affiliates": set(),
            })
            entry["total_quantity_sold"] += item.quantity
            entry["total_revenue"] += to_money(item.price) * item.quantity
            entry["total_commission"] += to_money(item.commission_earned)
            entry["affiliates"].add(item.affiliate_code)

        rows = []
        for entry in sorted(products.values(), key=lambda p: p["total_revenue"], reverse=True)[:limit]:
            affiliates = entry.pop("affiliates")
            entry["number_of_affiliates"] = len(affiliates)
            entry["total_revenue"] = float(to_money(entry["total_revenue"]))
            entry["total_commission"] = float(to_money(entry["total_commission"]))
            rows.append(entry)
        return rows

    async def get_sales_trends(self, months: int = 12, today: Optional[date] = None) -> List[Dict[str, Any]]:
        today = today or date.today()
        since = datetime.combine(_months_back(today, months - 1), time.min)
        result = await self.session.execute(
            select(SalesCommission).where(
                SalesCommission.created_at >= since,
                SalesCommission.status != "cancelled",
            )
        )
        buckets: Dict[str, Dict[str, Any]] = {}
        for c in result.scalars().all():
            key = c.created_at.strftime("%Y-%m")
            b = buckets.setdefault(key, {"total_sales": ZERO, "total_commission": ZERO, "orders": set()})
            b["total_sales"] += to_money(c.sale_amount)
            b["total_commission"] += to_money(c.commission_amount)
            b["orders"].add(c.order_id)
        return [
            {
                "month": month,
                "total_sales": float(b["total_sales"]),
                "total_commission": float(b["total_commission"]),
                "total_orders": len(b["orders"]),
            }
            for month, b in sorted(buckets.items())
        ][-months:]

    async def get_recent_sales(self, limit: int = 20) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(SalesCommission)
            .order_by(SalesCommission.created_at.desc(), SalesCommission.id.desc())
            .limit(limit)
        )
        commissions = list(result.scalars().all())
        names: Dict[tuple, str] = {}
        order_ids = {c.order_id for c in commissions}
        if order_ids:
            items = await self.session.execute(
                select(OrderItem.order_id, OrderItem.product_id, OrderItem.product_name)
                .where(OrderItem.order_id.in_(order_ids))
            )
            for order_id, product_id, name in items.all():
                names[(order_id, product_id)] = name or "Unknown Product"
        return [
            {
                "id": c.id,
                "affiliate_code": c.affiliate_code,
                "order_id": c.order_id,
                "product_name": names.get((c.order_id, c.product_id), "Product"),
                "sale_amount": float(to_money(c.sale_amount)),
                "commission_amount": float(to_money(c.commission_amount)),
                "status": c.status or "pending",
                "created_at": c.created_at.isoformat() if c.created_at else None,
            }
            for c in commissions
        ]

    async def get_analytics(self) -> Dict[str, Any]:
        report = await self.get_totals()
        report.update({
            "top_affiliates": await self.get_top_affiliates(),
            "top_products": await self.get_top_products(),
            "sales_trends": await self.get_sales_trends(),
            "recent_sales": await self.get_recent_sales(),
        })
        return report
