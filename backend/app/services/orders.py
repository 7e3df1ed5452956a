# backend/app/services/orders.py
"""
Order service.

Prices are always computed server-side from the catalog; the price a
client sends is only compared against it. Stock lives on the variation
when the line names one, otherwise on the product.
"""
import math
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import (
    ORDER_TRANSITIONS,
    PRICE_TOLERANCE,
    VALID_ORDER_STATUSES,
    ZERO,
    to_money,
)
from backend.app.core.exceptions import ServiceError, check_transition
from backend.app.core.logging import get_logger
from backend.app.core.metrics import orders_created_total
from backend.app.models.commission import SalesCommission
from backend.app.models.order import Order, OrderItem
from backend.app.models.product import Product, ProductVariation
from backend.app.models.user import UserProfile
from backend.app.services.affiliates import AffiliateService
from backend.app.services.sales_commissions import SalesCommissionService

logger = get_logger(__name__)


class OrderServiceError(ServiceError):
    """Base exception for order errors."""


class OrderNotFoundError(OrderServiceError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found", 404)


class InvalidOrderStatusError(OrderServiceError):
    def __init__(self, status: str):
        super().__init__(f"Invalid status: {status}. Allowed: {', '.join(VALID_ORDER_STATUSES)}", 400)


class OrderAccessDeniedError(OrderServiceError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} does not belong to you", 403)


class InsufficientStockError(OrderServiceError):
    def __init__(self, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_name}. Available: {available}, Requested: {requested}",
            409,
        )


def order_item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "product_id": item.product_id,
        "variation_id": item.variation_id,
        "product_name": item.product_name,
        "product_sku": item.product_sku,
        "color": item.color,
        "size": item.size,
        "quantity": item.quantity,
        "price": float(to_money(item.price)),
        "subtotal": float(to_money(Decimal(str(item.price)) * item.quantity)),
        "affiliate_code": item.affiliate_code,
        "commission_earned": float(to_money(item.commission_earned)),
    }


def order_to_dict(order: Order, items: Optional[List[OrderItem]] = None) -> Dict[str, Any]:
    data = {
        "id": order.id,
        "user_id": order.user_id,
        "total_amount": float(to_money(order.total_amount)),
        "status": order.status,
        "payment_completion": bool(order.payment_completion),
        "phone_number": order.phone_number,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }
    if items is not None:
        data["items"] = [order_item_to_dict(i) for i in items]
    return data


class OrderService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load_line(
        self,
        product_id: int,
        variation_id: Optional[int],
        lock: bool = False,
    ) -> Tuple[Product, Optional[ProductVariation]]:
        product = await self.session.get(Product, product_id, with_for_update=lock)
        if not product:
            raise OrderServiceError(f"Product {product_id} not found", 404)
        variation = None
        if variation_id is not None:
            variation = await self.session.get(ProductVariation, variation_id, with_for_update=lock)
            if not variation or variation.product_id != product_id:
                raise OrderServiceError(f"Variation not found for product {product.name}", 404)
        return product, variation

    @staticmethod
    def _unit_price(product: Product, variation: Optional[ProductVariation]) -> Decimal:
        base = product.price if product.price is not None else product.originalprice
        if base is None:
            raise OrderServiceError(f"Product {product.name} has no price", 400)
        adjustment = variation.price_adjustment if variation and variation.price_adjustment is not None else ZERO
        return to_money(Decimal(str(base)) + Decimal(str(adjustment)))

    @staticmethod
    def _available(product: Product, variation: Optional[ProductVariation]) -> int:
        if variation is not None:
            return variation.quantity or 0
        return product.stock_number or 0

    async def calculate_unit_price(self, product_id: int, variation_id: Optional[int] = None) -> Decimal:
        product, variation = await self._load_line(product_id, variation_id)
        return self._unit_price(product, variation)

    async def check_availability(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Per line: does the variation exist, is there enough stock and is the
        client price within PRICE_TOLERANCE of the server price.
        """
        results = []
        for item in items:
            line: Dict[str, Any] = {
                "product_id": item["product_id"],
                "variation_id": item.get("variation_id"),
                "requested": item["quantity"],
            }
            try:
                product, variation = await self._load_line(item["product_id"], item.get("variation_id"))
            except OrderServiceError as e:
                line.update({"available": False, "error": e.message, "price_valid": False})
                results.append(line)
                continue

            server_price = self._unit_price(product, variation)
            stock = self._available(product, variation)
            client_price = item.get("price")
            price_valid = client_price is None or abs(to_money(client_price) - server_price) <= PRICE_TOLERANCE
            line.update({
                "product_name": product.name,
                "in_stock": stock,
                "available": bool(product.is_active) and stock >= item["quantity"],
                "server_price": float(server_price),
                "price_valid": price_valid,
            })
            results.append(line)
        return {
            "items": results,
            "all_available": all(r["available"] and r["price_valid"] for r in results),
        }

    async def create_secure_order(
        self,
        user_id: int,
        phone_number: str,
        items: List[Dict[str, Any]],
        affiliate_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create an order priced from the catalog and reserve its stock.

        Every line is priced and stock-checked before anything is written,
        so a failing line leaves no partial order behind.
        """
        if not items:
            raise OrderServiceError("Order must contain at least one item", 400)
        if affiliate_code:
            affiliate_code = await AffiliateService(self.session).require_valid_code(affiliate_code)

        # Lock variation/product rows in a stable order so concurrent orders do not deadlock
        priced = []
        requested: Dict[Tuple[int, Optional[int]], int] = {}
        for item in items:
            key = (item["product_id"], item.get("variation_id"))
            requested[key] = requested.get(key, 0) + item["quantity"]

        stock_rows: Dict[Tuple[int, Optional[int]], Tuple[Product, Optional[ProductVariation]]] = {}
        for key in sorted(requested, key=lambda k: (k[0], k[1] or 0)):
            product, variation = await self._load_line(*key, lock=True)
            if not product.is_active:
                raise OrderServiceError(f"Product {product.name} is not available", 409)
            available = self._available(product, variation)
            if available < requested[key]:
                raise InsufficientStockError(product.name, available, requested[key])
            stock_rows[key] = (product, variation)

        total = ZERO
        for item in items:
            product, variation = stock_rows[(item["product_id"], item.get("variation_id"))]
            unit_price = self._unit_price(product, variation)
            total += unit_price * item["quantity"]
            priced.append((item, product, variation, unit_price))

        order = Order(
            user_id=user_id,
            total_amount=to_money(total),
            status="pending",
            payment_completion=False,
            phone_number=phone_number,
        )
        self.session.add(order)
        await self.session.flush()

        order_items = []
        for item, product, variation, unit_price in priced:
            order_item = OrderItem(
                order_id=order.id,
                product_id=product.id,
                variation_id=variation.id if variation else None,
                color=variation.color if variation else None,
                size=variation.size if variation else None,
                product_sku=variation.sku if variation else None,
                quantity=item["quantity"],
                price=unit_price,
                product_name=product.name,
                affiliate_code=affiliate_code,
                commission_earned=ZERO,
            )
            self.session.add(order_item)
            order_items.append(order_item)

        for (product_id, variation_id), qty in requested.items():
            product, variation = stock_rows[(product_id, variation_id)]
            if variation is not None:
                variation.quantity = (variation.quantity or 0) - qty
            else:
                product.stock_number = (product.stock_number or 0) - qty

        await self.session.commit()
        await self.session.refresh(order)
        orders_created_total.labels(attributed="yes" if affiliate_code else "no").inc()
        logger.info(
            "Order created",
            order_id=order.id,
            user_id=user_id,
            total=str(order.total_amount),
            items=len(order_items),
            affiliate_code=affiliate_code,
        )
        return order_to_dict(order, order_items)

    async def _get_order(self, order_id: int, for_update: bool = False) -> Order:
        # Locked reads refresh the row so a status committed meanwhile is seen
        order = await self.session.get(Order, order_id, with_for_update=for_update, populate_existing=for_update)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def _get_items(self, order_id: int) -> List[OrderItem]:
        result = await self.session.execute(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        )
        return list(result.scalars().all())

    async def get_order(self, order_id: int, user_id: Optional[int] = None) -> Dict[str, Any]:
        """Order with items. When user_id is given the order must belong to that user."""
        order = await self._get_order(order_id)
        if user_id is not None and order.user_id != user_id:
            raise OrderAccessDeniedError(order_id)
        return order_to_dict(order, await self._get_items(order_id))

    async def get_user_orders(self, user_id: int) -> List[Dict[str, Any]]:
        """A shopper's orders, newest first, with items."""
        result = await self.session.execute(
            select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id.desc())
        )
        orders = list(result.scalars().all())
        items_by_order: Dict[int, List[OrderItem]] = {o.id: [] for o in orders}
        if orders:
            items_result = await self.session.execute(
                select(OrderItem).where(OrderItem.order_id.in_(items_by_order.keys())).order_by(OrderItem.id)
            )
            for item in items_result.scalars().all():
                items_by_order[item.order_id].append(item)
        return [order_to_dict(o, items_by_order[o.id]) for o in orders]

    async def get_all_orders(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        """Paginated order list for admins, newest first."""
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        total = (await self.session.execute(select(func.count(Order.id)))).scalar() or 0
        result = await self.session.execute(
            select(Order, UserProfile.name)
            .outerjoin(UserProfile, UserProfile.id == Order.user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        orders = []
        for order, name in result.all():
            data = order_to_dict(order)
            data["user_name"] = name or "N/A"
            orders.append(data)
        return {
            "orders": orders,
            "total_count": total,
            "current_page": page,
            "total_pages": math.ceil(total / limit) if total else 0,
        }

    async def get_order_with_items(self, order_id: int) -> Dict[str, Any]:
        """Admin order view: order, items and buyer name."""
        order = await self._get_order(order_id)
        user = await self.session.get(UserProfile, order.user_id)
        data = order_to_dict(order, await self._get_items(order_id))
        data["user_name"] = (user.name if user else None) or "N/A"
        return data

    async def update_status(self, order_id: int, new_status: str) -> Dict[str, Any]:
        """
        Move an order along its lifecycle.

        completed -> accrue sales commissions for affiliate-attributed lines.
        cancelled -> cancel the order's pending commissions and return stock.
        """
        if new_status not in VALID_ORDER_STATUSES:
            raise InvalidOrderStatusError(new_status)
        order = await self._get_order(order_id, for_update=True)
        if order.status == new_status:
            return order_to_dict(order)
        check_transition("order", ORDER_TRANSITIONS, order.status, new_status)

        old_status = order.status
        order.status = new_status
        order.updated_at = datetime.now()

        commissions = SalesCommissionService(self.session)
        accrued = 0
        if new_status == "completed":
            accrued = await commissions.accrue_for_order(order)
        elif new_status == "cancelled":
            await commissions.cancel_for_order(order.id)
            await self._restore_stock(order.id)

        await self.session.commit()
        await self.session.refresh(order)
        logger.info(
            "Order status changed",
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            commissions_accrued=accrued,
        )
        return order_to_dict(order)

    async def complete_payment(self, order_id: int, user_id: Optional[int] = None) -> Dict[str, Any]:
        """Mark the order paid and confirmed."""
        order = await self._get_order(order_id, for_update=True)
        if user_id is not None and order.user_id != user_id:
            raise OrderAccessDeniedError(order_id)
        if order.payment_completion:
            return order_to_dict(order)
        if order.status != "pending":
            raise OrderServiceError(f"Cannot pay for an order in status '{order.status}'", 400)
        order.payment_completion = True
        order.status = "confirmed"
        order.updated_at = datetime.now()
        await self.session.commit()
        await self.session.refresh(order)
        logger.info("Order payment completed", order_id=order_id)
        return order_to_dict(order)

    async def _restore_stock(self, order_id: int) -> None:
        for item in await self._get_items(order_id):
            if item.variation_id is not None:
                variation = await self.session.get(ProductVariation, item.variation_id)
                if variation:
                    variation.quantity = (variation.quantity or 0) + item.quantity
            else:
                product = await self.session.get(Product, item.product_id)
                if product:
                    product.stock_number = (product.stock_number or 0) + item.quantity

    async def delete_order(self, order_id: int) -> None:
        """Delete an order and its items, returning stock unless the order was already cancelled."""
        order = await self._get_order(order_id, for_update=True)
        if order.status == "completed":
            raise OrderServiceError("Completed orders cannot be deleted", 400)
        if order.status != "cancelled":
            await self._restore_stock(order_id)
        await self.session.execute(delete(SalesCommission).where(SalesCommission.order_id == order_id))
        await self.session.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
        await self.session.execute(delete(Order).where(Order.id == order_id))
        await self.session.commit()
        logger.info("Order deleted", order_id=order_id, status=order.status)
