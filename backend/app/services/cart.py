# backend/app/services/cart.py
"""Shopping cart service."""
from datetime import datetime
from typing import Dict, Any

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import ZERO, to_money
from backend.app.core.exceptions import ServiceError
from backend.app.models.cart import CartItem
from backend.app.models.product import Product


class CartServiceError(ServiceError):
    """Base exception for cart errors."""


class CartService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_line(self, user_id: int, product_id: int):
        result = await self.session.execute(
            select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def fetch_cart(self, user_id: int) -> Dict[str, Any]:
        """Cart lines with a product snapshot, oldest first, and the cart total."""
        result = await self.session.execute(
            select(CartItem, Product)
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.user_id == user_id)
            .order_by(CartItem.added_at, CartItem.id)
        )
        items = []
        total = ZERO
        for line, product in result.all():
            price = to_money(product.price if product.price is not None else product.originalprice)
            total += price * line.quantity
            images = product.product_images or []
            items.append({
                "id": line.id,
                "product_id": product.id,
                "name": product.name,
                "price": float(price),
                "quantity": line.quantity,
                "image": images[0] if images else None,
                "in_stock": (product.stock_number or 0) > 0 and bool(product.is_active),
                "added_at": line.added_at.isoformat() if line.added_at else None,
            })
        return {"items": items, "total": float(to_money(total))}

    async def add_to_cart(self, user_id: int, product_id: int, quantity: int = 1) -> Dict[str, Any]:
        """Add a product; if it is already in the cart its quantity grows by `quantity`."""
        if quantity < 1:
            raise CartServiceError("Quantity must be >= 1", 400)
        product = await self.session.get(Product, product_id)
        if not product or not product.is_active:
            raise CartServiceError("Product not found", 404)

        line = await self._get_line(user_id, product_id)
        if line:
            line.quantity += quantity
            line.updated_at = datetime.now()
        else:
            line = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
            self.session.add(line)
        await self.session.commit()
        await self.session.refresh(line)
        return {"product_id": product_id, "quantity": line.quantity}

    async def update_quantity(self, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        """Set a line's quantity; anything below 1 removes the line."""
        if quantity < 1:
            await self.remove_from_cart(user_id, product_id)
            return {"product_id": product_id, "quantity": 0, "removed": True}
        line = await self._get_line(user_id, product_id)
        if not line:
            raise CartServiceError("Item not in cart", 404)
        line.quantity = quantity
        line.updated_at = datetime.now()
        await self.session.commit()
        return {"product_id": product_id, "quantity": quantity, "removed": False}

    async def remove_from_cart(self, user_id: int, product_id: int) -> None:
        await self.session.execute(
            delete(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
        )
        await self.session.commit()

    async def clear_cart(self, user_id: int) -> None:
        await self.session.execute(delete(CartItem).where(CartItem.user_id == user_id))
        await self.session.commit()
