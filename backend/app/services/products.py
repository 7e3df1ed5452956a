# backend/app/services/products.py
"""Catalog service: products, details, variations, reviews."""
from typing import Optional, List, Dict, Any

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import MAX_PRODUCT_IMAGES, ZERO, to_money
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.models.product import Product, ProductDetails, ProductVariation, Review
from backend.app.models.user import UserProfile

logger = get_logger(__name__)

NO_DESCRIPTION = "No description available"
UNCATEGORIZED = "Uncategorized"


class ProductServiceError(ServiceError):
    """Base exception for catalog errors."""


class ProductNotFoundError(ProductServiceError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", 404)


class VariationNotFoundError(ProductServiceError):
    def __init__(self, variation_id: int):
        super().__init__(f"Variation {variation_id} not found", 404)


def _normalize_images(urls) -> List[str]:
    if not urls:
        return []
    return [str(u).strip() for u in urls if u and str(u).strip()][:MAX_PRODUCT_IMAGES]


def product_to_dict(product: Product) -> Dict[str, Any]:
    images = product.product_images or []
    return {
        "id": product.id,
        "name": product.name,
        "price": float(product.price) if product.price is not None else None,
        "originalprice": float(product.originalprice) if product.originalprice is not None else None,
        "category": product.category or UNCATEGORIZED,
        "stock_number": product.stock_number or 0,
        "is_active": bool(product.is_active),
        "product_images": images,
        "image": images[0] if images else None,
        "in_stock": (product.stock_number or 0) > 0 and bool(product.is_active),
    }


def variation_to_dict(variation: ProductVariation) -> Dict[str, Any]:
    return {
        "id": variation.id,
        "product_id": variation.product_id,
        "color": variation.color,
        "size": variation.size,
        "quantity": variation.quantity or 0,
        "price_adjustment": float(variation.price_adjustment or ZERO),
        "sku": variation.sku,
    }


class ProductService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product(self, product_id: int) -> Product:
        product = await self.session.get(Product, product_id)
        if not product:
            raise ProductNotFoundError(product_id)
        return product

    async def _rating_stats(self, product_ids: Optional[List[int]] = None) -> Dict[int, tuple]:
        """product_id -> (average rating, review count)."""
        query = select(
            Review.product_id,
            func.avg(Review.rating),
            func.count(Review.id),
        ).group_by(Review.product_id)
        if product_ids is not None:
            query = query.where(Review.product_id.in_(product_ids))
        result = await self.session.execute(query)
        return {row[0]: (float(row[1] or 0), int(row[2])) for row in result.all()}

    async def list_products(self) -> List[Dict[str, Any]]:
        """All products with rating and review count, newest first."""
        result = await self.session.execute(select(Product).order_by(Product.created_at.desc(), Product.id.desc()))
        products = result.scalars().all()
        stats = await self._rating_stats()
        out = []
        for p in products:
            avg, count = stats.get(p.id, (0.0, 0))
            data = product_to_dict(p)
            data["rating"] = round(avg, 1)
            data["reviews_count"] = count
            out.append(data)
        return out

    async def get_multiple_products(self, product_ids: List[int]) -> List[Dict[str, Any]]:
        """Active products among the given ids."""
        if not product_ids:
            return []
        result = await self.session.execute(
            select(Product).where(Product.id.in_(product_ids), Product.is_active.is_(True))
        )
        return [product_to_dict(p) for p in result.scalars().all()]

    async def get_product_details(self, product_id: int) -> Dict[str, Any]:
        """Product with details, variations, rating and reviews (newest first)."""
        product = await self.get_product(product_id)
        details = await self.session.get(ProductDetails, product_id)

        reviews_result = await self.session.execute(
            select(Review, UserProfile.name)
            .outerjoin(UserProfile, UserProfile.id == Review.user_id)
            .where(Review.product_id == product_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
        )
        reviews = [
            {
                "id": r.id,
                "rating": r.rating,
                "comment": r.comment,
                "user_name": name or "Anonymous",
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r, name in reviews_result.all()
        ]
        avg = sum(r["rating"] for r in reviews) / len(reviews) if reviews else 0.0

        data = product_to_dict(product)
        data.update({
            "description": (details.description if details and details.description else NO_DESCRIPTION),
            "features": (details.features if details and details.features else []),
            "specifications": (details.specifications if details and details.specifications else {}),
            "rating": round(avg, 1),
            "reviews_count": len(reviews),
            "reviews": reviews,
            "variations": await self.get_variations(product_id),
        })
        return data

    async def get_variations(self, product_id: int) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(ProductVariation)
            .where(ProductVariation.product_id == product_id)
            .order_by(ProductVariation.created_at, ProductVariation.id)
        )
        return [variation_to_dict(v) for v in result.scalars().all()]

    async def add_review(self, product_id: int, user_id: int, rating: int, comment: Optional[str] = None) -> Dict[str, Any]:
        if rating < 1 or rating > 5:
            raise ProductServiceError("Rating must be between 1 and 5", 400)
        await self.get_product(product_id)
        review = Review(product_id=product_id, user_id=user_id, rating=rating, comment=comment)
        self.session.add(review)
        await self.session.commit()
        await self.session.refresh(review)
        return {"id": review.id, "product_id": product_id, "rating": rating, "comment": comment}

    # --- Admin ---

    async def create_product(self, data: Dict[str, Any]) -> Product:
        data = dict(data)
        details = {k: data.pop(k) for k in ("description", "features", "specifications") if k in data}
        data["product_images"] = _normalize_images(data.get("product_images"))
        product = Product(**data)
        self.session.add(product)
        await self.session.flush()
        if details:
            self.session.add(ProductDetails(product_id=product.id, **details))
        await self.session.commit()
        await self.session.refresh(product)
        logger.info("Product created", product_id=product.id, name=product.name)
        return product

    async def update_product(self, product_id: int, data: Dict[str, Any]) -> Product:
        """Partial update. Keys with None are left unchanged."""
        product = await self.get_product(product_id)
        data = dict(data)
        details = {k: data.pop(k) for k in ("description", "features", "specifications") if k in data}
        if "product_images" in data and data["product_images"] is not None:
            data["product_images"] = _normalize_images(data["product_images"])
        for field, value in data.items():
            if value is not None:
                setattr(product, field, value)
        if any(v is not None for v in details.values()):
            await self._upsert_details(product_id, details)
        await self.session.commit()
        await self.session.refresh(product)
        return product

    async def _upsert_details(self, product_id: int, values: Dict[str, Any]) -> ProductDetails:
        details = await self.session.get(ProductDetails, product_id)
        if details is None:
            details = ProductDetails(product_id=product_id)
            self.session.add(details)
        for field, value in values.items():
            if value is not None:
                setattr(details, field, value)
        return details

    async def upsert_details(self, product_id: int, values: Dict[str, Any]) -> Dict[str, Any]:
        await self.get_product(product_id)
        details = await self._upsert_details(product_id, values)
        await self.session.commit()
        return {
            "product_id": product_id,
            "description": details.description,
            "features": details.features or [],
            "specifications": details.specifications or {},
        }

    async def delete_product(self, product_id: int) -> None:
        """Delete a product with its details, variations and reviews."""
        await self.get_product(product_id)
        await self.session.execute(delete(ProductDetails).where(ProductDetails.product_id == product_id))
        await self.session.execute(delete(ProductVariation).where(ProductVariation.product_id == product_id))
        await self.session.execute(delete(Review).where(Review.product_id == product_id))
        await self.session.execute(delete(Product).where(Product.id == product_id))
        await self.session.commit()
        logger.info("Product deleted", product_id=product_id)

    async def set_product_images(self, product_id: int, urls: List[str]) -> List[str]:
        product = await self.get_product(product_id)
        product.product_images = _normalize_images(urls)
        await self.session.commit()
        return product.product_images

    async def remove_product_image(self, product_id: int, url: str) -> List[str]:
        product = await self.get_product(product_id)
        images = [u for u in (product.product_images or []) if u != url]
        if len(images) == len(product.product_images or []):
            raise ProductServiceError("Image not found on product", 404)
        product.product_images = images
        await self.session.commit()
        return images

    async def add_variation(self, product_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        await self.get_product(product_id)
        if (data.get("quantity") or 0) < 0:
            raise ProductServiceError("Quantity cannot be negative", 400)
        variation = ProductVariation(
            product_id=product_id,
            color=data.get("color"),
            size=data.get("size"),
            quantity=data.get("quantity") or 0,
            price_adjustment=to_money(data.get("price_adjustment") or 0),
            sku=data.get("sku"),
        )
        self.session.add(variation)
        await self.session.commit()
        await self.session.refresh(variation)
        return variation_to_dict(variation)

    async def update_variation(self, variation_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        variation = await self.session.get(ProductVariation, variation_id)
        if not variation:
            raise VariationNotFoundError(variation_id)
        if data.get("quantity") is not None and data["quantity"] < 0:
            raise ProductServiceError("Quantity cannot be negative", 400)
        for field in ("color", "size", "quantity", "sku"):
            if data.get(field) is not None:
                setattr(variation, field, data[field])
        if data.get("price_adjustment") is not None:
            variation.price_adjustment = to_money(data["price_adjustment"])
        await self.session.commit()
        await self.session.refresh(variation)
        return variation_to_dict(variation)
