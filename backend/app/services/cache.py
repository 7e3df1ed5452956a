"""
Redis cache for the product catalog and admin analytics.
Values are stored as JSON with a TTL.
"""
import json
from typing import Optional, Any, List
from redis.asyncio import Redis

from backend.app.core.settings import get_settings


class CacheService:
    """Service for caching operations using Redis."""

    _redis: Optional[Redis] = None

    # Default TTL values (in seconds)
    TTL_PRODUCTS = 60          # 1 minute - stock changes with every order
    TTL_ANALYTICS = 300        # 5 minutes - dashboards tolerate slight staleness
    TTL_DEFAULT = 300

    # Cache key prefixes
    KEY_PRODUCTS = "products:all"
    KEY_ANALYTICS = "analytics:{name}:{params}"

    @classmethod
    async def get_redis(cls) -> Redis:
        """Get or create Redis connection."""
        if cls._redis is None:
            settings = get_settings()
            cls._redis = Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                decode_responses=True
            )
        return cls._redis

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._redis:
            await cls._redis.aclose()
            cls._redis = None

    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        data = await self.redis.get(key)
        if data:
            return json.loads(data)
        return None

    async def set(self, key: str, value: Any, ttl: int = TTL_DEFAULT):
        """Set value in cache with TTL."""
        await self.redis.set(key, json.dumps(value, ensure_ascii=False, default=str), ex=ttl)

    async def delete(self, key: str):
        """Delete value from cache."""
        await self.redis.delete(key)

    async def delete_pattern(self, pattern: str):
        """Delete all keys matching pattern."""
        keys = [key async for key in self.redis.scan_iter(match=pattern)]
        if keys:
            await self.redis.delete(*keys)

    # ----- Catalog -----

    async def get_products(self) -> Optional[List[dict]]:
        return await self.get(self.KEY_PRODUCTS)

    async def set_products(self, products: List[dict]):
        await self.set(self.KEY_PRODUCTS, products, self.TTL_PRODUCTS)

    async def invalidate_products(self):
        await self.delete(self.KEY_PRODUCTS)

    # ----- Admin analytics -----

    @classmethod
    def analytics_key(cls, name: str, **params: Any) -> str:
        """Key for one analytics report; params are the report's filters."""
        encoded = ",".join(f"{k}={params[k]}" for k in sorted(params) if params[k] is not None)
        return cls.KEY_ANALYTICS.format(name=name, params=encoded or "all")

    async def get_analytics(self, key: str) -> Optional[dict]:
        return await self.get(key)

    async def set_analytics(self, key: str, report: dict):
        await self.set(key, report, self.TTL_ANALYTICS)

    async def invalidate_analytics(self):
        """Drop every cached report. Called after admin changes to orders, commissions or withdrawals."""
        await self.delete_pattern("analytics:*")
