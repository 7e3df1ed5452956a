"""Wishlist service."""
from typing import List, Dict, Any

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ServiceError
from backend.app.models.cart import WishlistItem
from backend.app.models.product import Product
from backend.app.services.products import product_to_dict


class WishlistServiceError(ServiceError):
    """Base exception for wishlist errors."""


class WishlistService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_item(self, user_id: int, product_id: int):
        result = await self.session.execute(
            select(WishlistItem).where(WishlistItem.user_id == user_id, WishlistItem.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def add_to_wishlist(self, user_id: int, product_id: int) -> Dict[str, Any]:
        """Add to wishlist. Adding twice returns the existing entry."""
        existing = await self._get_item(user_id, product_id)
        if existing:
            return {"wishlist_item_id": existing.wishlist_item_id, "product_id": product_id, "created": False}
        if not await self.session.get(Product, product_id):
            raise WishlistServiceError("Product not found", 404)
        item = WishlistItem(user_id=user_id, product_id=product_id)
        self.session.add(item)
        await self.session.commit()
        await self.session.refresh(item)
        return {"wishlist_item_id": item.wishlist_item_id, "product_id": product_id, "created": True}

    async def remove(self, user_id: int, product_id: int) -> None:
        await self.session.execute(
            delete(WishlistItem).where(WishlistItem.user_id == user_id, WishlistItem.product_id == product_id)
        )
        await self.session.commit()

    async def clear(self, user_id: int) -> None:
        await self.session.execute(delete(WishlistItem).where(WishlistItem.user_id == user_id))
        await self.session.commit()

    async def fetch(self, user_id: int) -> List[Dict[str, Any]]:
        """Wishlist entries with product data, newest first."""
        result = await self.session.execute(
            select(WishlistItem, Product)
            .join(Product, Product.id == WishlistItem.product_id)
            .where(WishlistItem.user_id == user_id)
            .order_by(WishlistItem.created_at.desc(), WishlistItem.wishlist_item_id.desc())
        )
        return [
            {
                "wishlist_item_id": item.wishlist_item_id,
                "added_at": item.created_at.isoformat() if item.created_at else None,
                "product": product_to_dict(product),
            }
            for item, product in result.all()
        ]

    async def is_in_wishlist(self, user_id: int, product_id: int) -> bool:
        return await self._get_item(user_id, product_id) is not None
