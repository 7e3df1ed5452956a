"""
Sales commissions: what an affiliate earns on orders carrying their code.

Rows are accrued when an order is completed, settled (completed or
cancelled) by an admin, and read back by the affiliate dashboard and the
admin payments screen.
"""
from datetime import datetime, date, time
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import (
    COMMISSION_STATUSES,
    COMMISSION_TRANSITIONS,
    PAID_STATUSES,
    PERCENT_BASE,
    ZERO,
    format_money,
    to_money,
)
from backend.app.core.exceptions import ServiceError, check_transition
from backend.app.core.logging import get_logger
from backend.app.core.metrics import commissions_accrued_total, commissions_settled_total
from backend.app.core.settings import get_settings
from backend.app.models.commission import SalesCommission
from backend.app.models.order import Order, OrderItem
from backend.app.models.product import Product
from backend.app.services.balances import BalanceService, SALES

logger = get_logger(__name__)


class SalesCommissionServiceError(ServiceError):
    """Base exception for sales commission errors."""


class SalesCommissionNotFoundError(SalesCommissionServiceError):
    def __init__(self, commission_id: int):
        super().__init__(f"Sales commission {commission_id} not found", 404)


def calculate_commission(sale_amount: Decimal, percent: Optional[Decimal] = None) -> Decimal:
    """Commission on a sale, rounded half-up to cents."""
    if percent is None:
        percent = get_settings().SALES_COMMISSION_PERCENT
    return to_money(to_money(sale_amount) * Decimal(str(percent)) / PERCENT_BASE)


def commission_rate(sale_amount, commission_amount) -> str:
    """Effective rate in percent as a 2-decimal string; "0" when there was no sale."""
    sale = to_money(sale_amount)
    if sale == ZERO:
        return "0"
    return str(to_money(to_money(commission_amount) / sale * PERCENT_BASE))


def _split_commission(commission: Decimal, items: List[OrderItem]) -> None:
    """
    Spread a merged commission over its order lines. Each line gets its own
    share, capped by what is left; the last line takes the remainder so the
    lines always add up to the commission row.
    """
    remaining = commission
    for item in items[:-1]:
        share = min(calculate_commission(to_money(item.price) * item.quantity), remaining)
        item.commission_earned = share
        remaining -= share
    items[-1].commission_earned = remaining


def commission_to_dict(c: SalesCommission) -> Dict[str, Any]:
    return {
        "id": c.id,
        "affiliate_code": c.affiliate_code,
        "order_id": c.order_id,
        "product_id": c.product_id,
        "sale_amount": float(to_money(c.sale_amount)),
        "commission_amount": float(to_money(c.commission_amount)),
        "status": c.status,
        "paid_at": c.paid_at.isoformat() if c.paid_at else None,
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }


class SalesCommissionService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # --- Accrual ---

    async def accrue_for_order(self, order: Order) -> int:
        """
        Record a pending commission for each affiliate-attributed line of a
        completed order. Lines already accrued are skipped. Caller commits.
        Returns the number of new commission rows.
        """
        balances = BalanceService(self.session)
        items_result = await self.session.execute(
            select(OrderItem).where(OrderItem.order_id == order.id, OrderItem.affiliate_code.is_not(None))
        )
        existing_result = await self.session.execute(
            select(SalesCommission.product_id, SalesCommission.affiliate_code).where(
                SalesCommission.order_id == order.id
            )
        )
        existing = {(row[0], row[1]) for row in existing_result.all()}

        # Lines of the same product and code are merged into one commission
        sales: Dict[Tuple[int, str], Decimal] = {}
        lines: Dict[Tuple[int, str], List[OrderItem]] = {}
        for item in items_result.scalars().all():
            key = (item.product_id, item.affiliate_code)
            sales[key] = sales.get(key, ZERO) + to_money(item.price) * item.quantity
            lines.setdefault(key, []).append(item)

        created = 0
        for (product_id, code), sale_amount in sales.items():
            if (product_id, code) in existing:
                continue
            if not await balances.find_profile_by_code(code):
                logger.warning("Order item names unknown affiliate", order_id=order.id, affiliate_code=code)
                continue
            commission = calculate_commission(sale_amount)
            self.session.add(SalesCommission(
                affiliate_code=code,
                order_id=order.id,
                product_id=product_id,
                sale_amount=to_money(sale_amount),
                commission_amount=commission,
                status="pending",
            ))
            _split_commission(commission, lines[(product_id, code)])
            created += 1
            commissions_accrued_total.labels(kind="sales").inc()

        if created:
            logger.info("Sales commissions accrued", order_id=order.id, count=created)
        return created

    async def cancel_for_order(self, order_id: int) -> int:
        """Cancel the pending commissions of an order. Caller commits."""
        result = await self.session.execute(
            update(SalesCommission)
            .where(SalesCommission.order_id == order_id, SalesCommission.status == "pending")
            .values(status="cancelled")
        )
        return result.rowcount or 0

    # --- Affiliate dashboard ---

    async def get_sales_commissions(self, code: str, status: Optional[str] = None) -> List[SalesCommission]:
        query = select(SalesCommission).where(SalesCommission.affiliate_code == code)
        if status:
            query = query.where(SalesCommission.status == status)
        result = await self.session.execute(
            query.order_by(SalesCommission.created_at.desc(), SalesCommission.id.desc())
        )
        return list(result.scalars().all())

    async def _line_details(self, commissions: List[SalesCommission]) -> Dict[Tuple[int, int], Dict[str, Any]]:
        """(order_id, product_id) -> name/sku/color/size taken from the order lines."""
        if not commissions:
            return {}
        order_ids = {c.order_id for c in commissions}
        product_ids = {c.product_id for c in commissions}
        items = await self.session.execute(
            select(OrderItem).where(OrderItem.order_id.in_(order_ids), OrderItem.product_id.in_(product_ids))
        )
        products = await self.session.execute(select(Product.id, Product.name).where(Product.id.in_(product_ids)))
        product_names = {row.id: row.name for row in products.all()}

        details: Dict[Tuple[int, int], Dict[str, Any]] = {}
        for item in items.scalars().all():
            details.setdefault((item.order_id, item.product_id), {
                "product_name": item.product_name or product_names.get(item.product_id),
                "product_sku": item.product_sku,
                "color": item.color,
                "size": item.size,
                "quantity": item.quantity,
            })
        for c in commissions:
            details.setdefault((c.order_id, c.product_id), {
                "product_name": product_names.get(c.product_id),
                "product_sku": None,
                "color": None,
                "size": None,
                "quantity": None,
            })
        return details

    async def _with_products(self, commissions: List[SalesCommission]) -> List[Dict[str, Any]]:
        details = await self._line_details(commissions)
        out = []
        for c in commissions:
            data = commission_to_dict(c)
            line = details[(c.order_id, c.product_id)]
            data.update(line)
            data["product_name"] = line["product_name"] or "Unknown Product"
            out.append(data)
        return out

    async def get_sales_with_products(self, code: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        return await self._with_products(await self.get_sales_commissions(code, status))

    async def get_formatted_sales(self, code: str) -> List[Dict[str, Any]]:
        """Rows shaped for the affiliate transactions table."""
        out = []
        for sale in await self.get_sales_with_products(code):
            variant = ", ".join(v for v in (sale["color"], sale["size"]) if v)
            out.append({
                "id": sale["id"],
                "product": f"{sale['product_name']} ({variant})" if variant else sale["product_name"],
                "order_id": sale["order_id"],
                "date": sale["created_at"][:10] if sale["created_at"] else None,
                "sale_amount": format_money(sale["sale_amount"]),
                "amount": format_money(sale["commission_amount"]),
                "status": sale["status"].capitalize(),
                "paid_at": sale["paid_at"][:10] if sale["paid_at"] else None,
            })
        return out

    async def get_sales_stats(self, code: str) -> Dict[str, Any]:
        commissions = await self.get_sales_commissions(code)
        completed = [c for c in commissions if c.status in PAID_STATUSES]
        pending = [c for c in commissions if c.status == "pending"]
        return {
            "total_sales": len(commissions),
            "completed_sales": len(completed),
            "pending_sales": len(pending),
            "total_commission_earnings": float(sum((to_money(c.commission_amount) for c in completed), ZERO)),
            "pending_commission_earnings": float(sum((to_money(c.commission_amount) for c in pending), ZERO)),
            "total_sales_value": float(sum((to_money(c.sale_amount) for c in completed), ZERO)),
        }

    async def get_sales_by_date_range(self, code: str, start: date, end: date) -> List[Dict[str, Any]]:
        """Commissions created between start and end, both days inclusive."""
        if start > end:
            raise SalesCommissionServiceError("start must not be after end", 400)
        result = await self.session.execute(
            select(SalesCommission)
            .where(
                SalesCommission.affiliate_code == code,
                SalesCommission.created_at >= datetime.combine(start, time.min),
                SalesCommission.created_at <= datetime.combine(end, time.max),
            )
            .order_by(SalesCommission.created_at.desc(), SalesCommission.id.desc())
        )
        return await self._with_products(list(result.scalars().all()))

    async def get_recent_sales(self, code: str, limit: int = 10) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(SalesCommission)
            .where(SalesCommission.affiliate_code == code)
            .order_by(SalesCommission.created_at.desc(), SalesCommission.id.desc())
            .limit(limit)
        )
        return await self._with_products(list(result.scalars().all()))

    async def get_sales_performance(self, code: str) -> Dict[str, Any]:
        stats = await self.get_sales_stats(code)
        total = stats["total_sales"]
        completed = stats["completed_sales"]
        stats.update({
            "conversion_rate": round(completed / total * 100, 2) if total else 0,
            "average_commission": round(stats["total_commission_earnings"] / completed, 2) if completed else 0,
            "average_sale_value": round(stats["total_sales_value"] / completed, 2) if completed else 0,
        })
        return stats

    # --- Admin ---

    async def get_commission(self, commission_id: int, for_update: bool = False) -> SalesCommission:
        commission = await self.session.get(
            SalesCommission, commission_id, with_for_update=for_update, populate_existing=for_update
        )
        if not commission:
            raise SalesCommissionNotFoundError(commission_id)
        return commission

    async def _payment_views(self, commissions: List[SalesCommission]) -> List[Dict[str, Any]]:
        product_ids = {c.product_id for c in commissions}
        products = {}
        if product_ids:
            result = await self.session.execute(select(Product).where(Product.id.in_(product_ids)))
            products = {p.id: p for p in result.scalars().all()}
        return [self._payment_view(c, products.get(c.product_id)) for c in commissions]

    @staticmethod
    def _payment_view(c: SalesCommission, product: Optional[Product]) -> Dict[str, Any]:
        sale_amount = float(to_money(c.sale_amount))
        commission_amount = float(to_money(c.commission_amount))
        product_price = float(to_money(product.price)) if product and product.price is not None else 0
        return {
            "id": c.id,
            "payment_id": f"SC-{c.id}",
            "affiliate_code": c.affiliate_code,
            "amount": commission_amount,
            "status": c.status or "pending",
            "created_at": c.created_at.isoformat() if c.created_at else None,
            "type": "sales_commission",
            "details": {
                "product_id": c.product_id,
                "product_name": product.name if product else f"Product {c.product_id}",
                "product_price": product_price,
                "original_price": float(to_money(product.originalprice)) if product and product.originalprice is not None else 0,
                "category": (product.category if product and product.category else "Unknown"),
                "order_id": c.order_id,
                "sale_amount": sale_amount,
                "commission_amount": commission_amount,
                "commission_rate": commission_rate(c.sale_amount, c.commission_amount),
                "sale_date": c.created_at.isoformat() if c.created_at else None,
                "paid_at": c.paid_at.isoformat() if c.paid_at else None,
                "quantity": 1,
                "unit_price": sale_amount or product_price,
            },
        }

    async def list_all(self, status: Optional[str] = None, affiliate_code: Optional[str] = None) -> List[Dict[str, Any]]:
        query = select(SalesCommission)
        if status:
            query = query.where(SalesCommission.status == status)
        if affiliate_code:
            query = query.where(SalesCommission.affiliate_code == affiliate_code)
        result = await self.session.execute(
            query.order_by(SalesCommission.created_at.desc(), SalesCommission.id.desc())
        )
        return await self._payment_views(list(result.scalars().all()))

    async def get_payment_view(self, commission_id: int) -> Dict[str, Any]:
        commission = await self.get_commission(commission_id)
        return (await self._payment_views([commission]))[0]

    async def update_status(self, commission_id: int, new_status: str) -> Dict[str, Any]:
        """
        Settle a commission. pending -> completed credits the affiliate and
        stamps paid_at; pending -> cancelled just closes it.
        """
        if new_status not in COMMISSION_STATUSES:
            raise SalesCommissionServiceError(f"Invalid status: {new_status}", 400)
        commission = await self.get_commission(commission_id, for_update=True)
        check_transition("sales commission", COMMISSION_TRANSITIONS, commission.status, new_status)

        commission.status = new_status
        if new_status == "completed":
            commission.paid_at = datetime.now()
            await BalanceService(self.session).credit_commission(
                commission.affiliate_code, commission.commission_amount, SALES
            )
        await self.session.commit()
        commissions_settled_total.labels(kind="sales", status=new_status).inc()
        logger.info(
            "Sales commission settled",
            commission_id=commission_id,
            affiliate_code=commission.affiliate_code,
            status=new_status,
        )
        return await self.get_payment_view(commission_id)
