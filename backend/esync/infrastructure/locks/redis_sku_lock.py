# esync/infrastructure/locks/redis_sku_lock.py
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

import redis

logger = logging.getLogger(__name__)


class SkuLockBusy(Exception):
    """Another process holds the lock for this SKU."""


"""
按 (shop, sku) 的短租约锁：
    acquire: SET key token NX PX ttl
    release: Lua 比对 token 后 DEL（只删自己持有的，过期后被别人拿到的锁不误删）
只缩小 “查不到 → 创建” 之间的竞态窗口，不是事务；租约过期后仍可能重复创建。
"""
class RedisSkuLock:

    RELEASE_SCRIPT = """
    if redis.call('GET', KEYS[1]) == ARGV[1] then
        return redis.call('DEL', KEYS[1])
    end
    return 0
    """

    def __init__(self, client: redis.Redis, *, key_prefix: str = "esync:sku-lock", ttl_ms: int = 30_000) -> None:
        self.r = client
        self.key_prefix = key_prefix
        self.ttl_ms = int(ttl_ms)

    @classmethod
    def from_settings(cls) -> Optional["RedisSkuLock"]:
        from esync.core.config import settings

        if not settings.SKU_LOCK_ENABLED:
            return None
        url = settings.redis_for_locks
        if not url:
            logger.warning("SKU lock disabled (no redis url configured).")
            return None
        return cls(
            redis.from_url(url, decode_responses=True),
            key_prefix=settings.SKU_LOCK_KEY_PREFIX,
            ttl_ms=settings.SKU_LOCK_TTL_MS,
        )

    def _key(self, shop_domain: str, sku: str) -> str:
        return f"{self.key_prefix}:{shop_domain}:{sku}"

    @contextmanager
    def hold(self, shop_domain: str, sku: str) -> Iterator[str]:
        key = self._key(shop_domain, sku)
        token = uuid.uuid4().hex
        if not self.r.set(key, token, nx=True, px=self.ttl_ms):
            raise SkuLockBusy(f"SKU {sku} is being synchronised by another worker; retry later.")
        try:
            yield token
        finally:
            released = self.r.eval(self.RELEASE_SCRIPT, 1, key, token)
            if not released:
                logger.warning("sku_lock.expired_before_release key=%s", key)
