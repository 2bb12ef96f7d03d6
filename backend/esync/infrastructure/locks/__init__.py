"""
  短租约锁：目前只有按 SKU 的 Redis 锁，包住 upsert 的 check-then-write。
     from esync.infrastructure.locks import RedisSkuLock
"""
from .redis_sku_lock import RedisSkuLock, SkuLockBusy

__all__ = ["RedisSkuLock", "SkuLockBusy"]
