"""
Shop sales analytics for the admin dashboard.

Only completed orders count as sales. Date filters are inclusive and
apply to the order's creation time.
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import ZERO, to_money
from backend.app.models.order import Order, OrderItem
from backend.app.models.product import Product

COMPLETED = "completed"


def _bounds(start: Optional[date], end: Optional[date]) -> list:
    clauses = []
    if start:
        clauses.append(Order.created_at >= datetime.combine(start, time.min))
    if end:
        clauses.append(Order.created_at <= datetime.combine(end, time.max))
    return clauses


def _months_back(today: date, months: int) -> date:
    """First day of the month `months` months before today's month."""
    year, month = today.year, today.month - months
    while month <= 0:
        month += 12
        year -= 1
    return date(year, month, 1)


class SalesAnalyticsService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_total_income(self, start: Optional[date] = None, end: Optional[date] = None) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Order.total_amount), 0)).where(Order.status == COMPLETED, *_bounds(start, end))
        )
        return to_money(result.scalar())

    async def get_total_products_sold(self, start: Optional[date] = None, end: Optional[date] = None) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(OrderItem.quantity), 0))
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.status == COMPLETED, *_bounds(start, end))
        )
        return int(result.scalar() or 0)

    async def get_total_orders(self, start: Optional[date] = None, end: Optional[date] = None) -> int:
        result = await self.session.execute(
            select(func.count(Order.id)).where(Order.status == COMPLETED, *_bounds(start, end))
        )
        return int(result.scalar() or 0)

    async def get_average_order_value(self, start: Optional[date] = None, end: Optional[date] = None) -> Decimal:
        orders = await self.get_total_orders(start, end)
        if not orders:
            return to_money(ZERO)
        return to_money(await self.get_total_income(start, end) / orders)

    async def _completed_items(self, start: Optional[date], end: Optional[date]):
        result = await self.session.execute(
            select(OrderItem)
            .join(Order, Order.id == OrderItem.order_id)
            .where(Order.status == COMPLETED, *_bounds(start, end))
        )
        return result.scalars().all()

    async def get_top_products(
        self,
        limit: int = 10,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """Products ranked by revenue in completed orders."""
        products: Dict[int, Dict[str, Any]] = {}
        for item in await self._completed_items(start, end):
            entry = products.setdefault(item.product_id, {
                "product_id": item.product_id,
                "product_name": item.product_name or "Unknown Product",
                "total_quantity": 0,
                "total_revenue": ZERO,
                "order_count": 0,
            })
            entry["total_quantity"] += item.quantity
            entry["total_revenue"] += to_money(item.price) * item.quantity
            entry["order_count"] += 1
        ranked = sorted(products.values(), key=lambda p: p["total_revenue"], reverse=True)[:limit]
        for p in ranked:
            p["total_revenue"] = float(to_money(p["total_revenue"]))
        return ranked

    async def get_monthly_sales_trend(self, months: int = 12, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Revenue and order count per YYYY-MM over the last `months` months, oldest first."""
        today = today or date.today()
        start = _months_back(today, months - 1)
        result = await self.session.execute(
            select(Order.total_amount, Order.created_at)
            .where(Order.status == COMPLETED, *_bounds(start, today))
            .order_by(Order.created_at)
        )
        buckets: Dict[str, Dict[str, Any]] = {}
        for total, created_at in result.all():
            key = created_at.strftime("%Y-%m")
            bucket = buckets.setdefault(key, {"month": key, "revenue": ZERO, "orders": 0})
            bucket["revenue"] += to_money(total)
            bucket["orders"] += 1
        return [
            {"month": b["month"], "revenue": float(b["revenue"]), "orders": b["orders"]}
            for b in sorted(buckets.values(), key=lambda b: b["month"])
        ]

    async def get_sales_by_category(self, start: Optional[date] = None, end: Optional[date] = None) -> List[Dict[str, Any]]:
        items = await self._completed_items(start, end)
        product_ids = {i.product_id for i in items}
        categories_by_product: Dict[int, str] = {}
        if product_ids:
            result = await self.session.execute(
                select(Product.id, Product.category).where(Product.id.in_(product_ids))
            )
            categories_by_product = {row.id: row.category or "Uncategorized" for row in result.all()}

        categories: Dict[str, Dict[str, Any]] = {}
        for item in items:
            name = categories_by_product.get(item.product_id, "Uncategorized")
            entry = categories.setdefault(name, {"category": name, "revenue": ZERO, "quantity": 0})
            entry["revenue"] += to_money(item.price) * item.quantity
            entry["quantity"] += item.quantity
        ranked = sorted(categories.values(), key=lambda c: c["revenue"], reverse=True)
        for c in ranked:
            c["revenue"] = float(to_money(c["revenue"]))
        return ranked

    async def get_recent_orders(self, limit: int = 10) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(Order)
            .where(Order.status == COMPLETED)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
        )
        return [
            {
                "id": o.id,
                "total_amount": float(to_money(o.total_amount)),
                "status": o.status,
                "created_at": o.created_at.isoformat() if o.created_at else None,
                "payment_completion": bool(o.payment_completion),
                "phone_number": o.phone_number,
            }
            for o in result.scalars().all()
        ]

    async def get_daily_sales(self, days: int = 30, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Revenue and order count per day over the last `days` days, oldest first."""
        today = today or date.today()
        result = await self.session.execute(
            select(Order.total_amount, Order.created_at)
            .where(Order.status == COMPLETED, *_bounds(today - timedelta(days=days), today))
        )
        buckets: Dict[str, Dict[str, Any]] = {}
        for total, created_at in result.all():
            key = created_at.date().isoformat()
            bucket = buckets.setdefault(key, {"date": key, "revenue": ZERO, "orders": 0})
            bucket["revenue"] += to_money(total)
            bucket["orders"] += 1
        return [
            {"date": b["date"], "revenue": float(b["revenue"]), "orders": b["orders"]}
            for b in sorted(buckets.values(), key=lambda b: b["date"])
        ]

    async def get_analytics(self, start: Optional[date] = None, end: Optional[date] = None) -> Dict[str, Any]:
        """Everything the sales dashboard shows, in one report."""
        return {
            "total_income": float(await self.get_total_income(start, end)),
            "total_products_sold": await self.get_total_products_sold(start, end),
            "total_orders": await self.get_total_orders(start, end),
            "average_order_value": float(await self.get_average_order_value(start, end)),
            "top_products": await self.get_top_products(10, start, end),
            "monthly_sales_trend": await self.get_monthly_sales_trend(),
            "sales_by_category": await self.get_sales_by_category(start, end),
            "recent_orders": await self.get_recent_orders(),
            "daily_sales": await self.get_daily_sales(),
        }
