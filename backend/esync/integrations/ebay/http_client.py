"""
低层 HTTP 客户端：鉴权/限流/重试/401刷新
  - OAuth client-credentials 换取 application token，缓存到过期前；401 强制刷新一次；
  - 全局 Redis 令牌桶（可选）+ 进程内节流（X req/min）；
  - 429/5xx/网络异常指数退避；
  - 只提供 get_json，不关心业务字段结构。
"""

from __future__ import annotations

import base64
import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from urllib.parse import urljoin

import redis
import requests

from esync.core.config import settings
from esync.infrastructure.ratelimit import RedisTokenBucketLimiter
from esync.integrations.ebay.errors import (
    EbayAuthError,
    EbayClientError,
    EbayPayloadError,
    EbayRateLimitError,
    EbayServerError,
)
from esync.utils.clock import now_utc

logger = logging.getLogger(__name__)

# token 提前 60 秒视为过期，避免请求途中失效
_EXPIRY_SKEW = timedelta(seconds=60)


@dataclass
class _Token:
    value: str
    expires_at: datetime  # UTC


class EbayHttpClient:
    """eBay REST API 的低层 HTTP 客户端：负责鉴权、限流与重试。"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        *,
        oauth_url: Optional[str] = None,
        scope: Optional[str] = None,
        connect_timeout: Optional[int] = None,
        read_timeout: Optional[int] = None,
        rate_limit_per_min: Optional[int] = None,
        token_ttl_fallback_sec: Optional[int] = None,
        max_attempts: int = 3,
        limiter: Optional[RedisTokenBucketLimiter] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """初始化客户端，允许覆盖基础配置以便测试或多账号场景。"""
        secret = settings.EBAY_API_SECRET.get_secret_value() if settings.EBAY_API_SECRET else None

        self.base_url = (base_url or settings.EBAY_BASE_URL).rstrip("/") + "/"
        self.client_id = client_id or settings.EBAY_API_ID
        self.client_secret = client_secret or secret
        self.oauth_url = oauth_url or settings.EBAY_OAUTH_URL
        self.scope = scope or settings.EBAY_OAUTH_SCOPE
        self.connect_timeout = connect_timeout or settings.EBAY_CONNECT_TIMEOUT
        self.read_timeout = read_timeout or settings.EBAY_READ_TIMEOUT
        self.rate_limit_per_min = settings.EBAY_RATE_LIMIT_PER_MIN if rate_limit_per_min is None else rate_limit_per_min
        self.token_ttl_fallback_sec = token_ttl_fallback_sec or settings.EBAY_TOKEN_TTL_SEC
        self.max_attempts = max(1, int(max_attempts))

        self._session = session or requests.Session()
        self._sleep = sleep
        self._token: Optional[_Token] = None
        self._last_request_ts: float = 0.0
        # 全局限流：多个 worker / 进程共享同一个 Redis 令牌桶
        self._global_limiter = limiter if limiter is not None else RedisTokenBucketLimiter.from_settings(
            vendor="ebay", account=self.client_id
        )

    # ---------- Public ----------
    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """发送 GET 请求并返回解析后的 JSON，附带鉴权/重试/限流。"""
        resp = self._request("GET", path, params=params, **kwargs)
        return self._as_json(resp)

    def close(self) -> None:
        self._session.close()

    # ---------- Internals ----------
    def _as_json(self, resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            text = (resp.text or "")[:500]
            raise EbayPayloadError(f"non-JSON response (status={resp.status_code}): {text}") from e

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """执行一次底层 HTTP 调用，负责 token、限流、重试与状态码处理。"""

        # 1) 确保 token
        self._ensure_token()

        # 2) 构造请求
        url = urljoin(self.base_url, path.lstrip("/"))
        headers = kwargs.pop("headers", {}) or {}
        headers.setdefault("Accept", "application/json")
        headers.setdefault("Content-Type", "application/json")
        headers["Authorization"] = f"Bearer {self._token.value}"  # type: ignore[union-attr]
        timeout = kwargs.pop("timeout", (self.connect_timeout, self.read_timeout))

        already_refreshed = False
        for attempt in range(1, self.max_attempts + 1):
            # 3) 节流
            self._respect_rate_limit()

            try:
                resp = self._session.request(method, url, headers=headers, timeout=timeout, **kwargs)
            except requests.RequestException as e:
                # error1: 连接/超时
                logger.warning("ebay.request_exception path=%s attempt=%s/%s err=%s",
                               path, attempt, self.max_attempts, type(e).__name__)
                if attempt == self.max_attempts:
                    raise EbayClientError(f"request error: {e}") from e
                self._sleep_backoff(attempt)
                continue

            self._last_request_ts = time.monotonic()
            status = resp.status_code

            # error2: 401 → 刷新一次 token 并重放
            if status == 401 and not already_refreshed:
                logger.info("ebay.401_refresh path=%s", path)
                self._authenticate(force=True)
                headers["Authorization"] = f"Bearer {self._token.value}"  # type: ignore[union-attr]
                already_refreshed = True
                continue

            if status == 429:
                logger.warning("ebay.429_throttled path=%s attempt=%s/%s", path, attempt, self.max_attempts)
                if attempt == self.max_attempts:
                    raise EbayRateLimitError(f"429 after retries: {(resp.text or '')[:300]}")
                self._sleep_backoff(attempt)
                continue

            if status >= 500:
                logger.warning("ebay.server_error path=%s status=%s attempt=%s/%s",
                               path, status, attempt, self.max_attempts)
                if attempt == self.max_attempts:
                    raise EbayServerError(f"{status} after retries: {(resp.text or '')[:300]}")
                self._sleep_backoff(attempt)
                continue

            if status >= 400:
                snippet = (resp.text or "")[:300]
                if status == 401:
                    raise EbayAuthError(f"401 after token refresh: {snippet}")
                raise EbayClientError(f"{status} client error: {snippet}")

            return resp

        # 401 刷新后最后一次仍然失败时会走到这里
        raise EbayClientError(f"{method} {path} exhausted retries")

    # ---------- Helpers ----------
    def _respect_rate_limit(self) -> None:
        """优先使用 Redis 令牌桶限流；Redis 不可用时退回进程内节流。"""
        limiter = self._global_limiter
        if limiter is not None:
            try:
                for _ in range(20):
                    allowed, wait_ms = limiter.acquire_once()
                    if allowed:
                        return
                    self._sleep(max(0.001, (wait_ms or 1000) / 1000.0))
                # 20 次仍未拿到：交给进程内节流兜底
            except redis.RedisError as e:
                logger.warning("ebay.global_rate_limit_unavailable err=%s; falling back to process-local", e)

        # --- 进程内节流 ---
        if not self.rate_limit_per_min or self.rate_limit_per_min <= 0:
            return
        interval = 60.0 / float(self.rate_limit_per_min)
        delta = time.monotonic() - self._last_request_ts
        if delta < interval:
            self._sleep(interval - delta)

    # 指数退避：上限 60 秒，加上 0~25% 抖动。例：2s, 4s, 8s ...
    def _sleep_backoff(self, attempt: int) -> None:
        base = min(2 ** attempt, 60)
        self._sleep(base + random.uniform(0, 0.25 * base))

    def _ensure_token(self) -> None:
        if self._token is None or now_utc() >= self._token.expires_at:
            self._authenticate(force=True)

    def _authenticate(self, force: bool = False) -> None:
        """client_credentials 授权：Basic base64(id:secret) + 表单体。"""
        if self._token and not force and now_utc() < self._token.expires_at:
            return
        if not self.client_id or not self.client_secret:
            raise EbayAuthError("eBay API credentials (EBAY_API_ID, EBAY_API_SECRET) are not configured.")

        encoded = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode("utf-8")).decode("ascii")
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Authorization": f"Basic {encoded}",
        }
        body = {"grant_type": "client_credentials", "scope": self.scope}

        try:
            resp = self._session.post(self.oauth_url, data=body, headers=headers,
                                      timeout=(self.connect_timeout, self.read_timeout))
        except requests.RequestException as e:
            raise EbayAuthError(f"oauth request error: {e}") from e

        if resp.status_code >= 400:
            raise EbayAuthError(f"oauth failed: {resp.status_code} {(resp.text or '')[:300]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise EbayAuthError(f"oauth non-JSON response: {e}") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise EbayAuthError("oauth response missing access_token")

        expires_at = self._extract_token_expiry(data)
        self._token = _Token(value=token, expires_at=expires_at)
        logger.info("ebay.authenticated expires_at=%s", expires_at.isoformat())

    def _extract_token_expiry(self, data: Dict[str, Any]) -> datetime:
        now = now_utc()
        expires_in = data.get("expires_in")
        if isinstance(expires_in, (int, float)) and expires_in > 0:
            return now + timedelta(seconds=float(expires_in)) - _EXPIRY_SKEW
        return now + timedelta(seconds=self.token_ttl_fallback_sec) - _EXPIRY_SKEW
