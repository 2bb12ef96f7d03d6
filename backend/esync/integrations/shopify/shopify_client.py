"""面向单个店铺的 Admin API 轻量 Client（REST + 一条 GraphQL 查询），只放 upsert 需要的方法"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests
from requests import RequestException, Timeout

from esync.core.config import settings
from esync.integrations.shopify.errors import (
    ShopifyGraphQLError,
    ShopifyHTTPError,
    ShopifyPayloadError,
    ShopifyRequestError,
)
from esync.integrations.shopify.graphql_queries import (
    PRODUCT_VARIANTS_BY_SKU,
    SHOP_PING,
    gid_to_numeric_id,
    sku_search_query,
)


logger = logging.getLogger(__name__)

SKU_LOOKUP_WINDOW = 10     # 一次取回的候选变体数，客户端再做全等过滤
DEFAULT_IMAGE_ALT = "Product Image"


class ShopifyStoreClient:
    '''
    每个店铺一个实例（凭证显式注入，不读全局单例），便于测试替身与多店铺并行。
        异常处理（_request 统一）：
           1) 429 限流：读 Retry-After 退避重试（任何 HTTP 方法都安全，请求未被处理）
           2) 5xx / 超时 / 网络异常：只对幂等调用（GET / PUT / GraphQL 查询 / inventory set）重试
           3) 其它 4xx：不重试，直接抛 ShopifyHTTPError
           4) GraphQL 顶层 errors：直接抛 ShopifyGraphQLError
    '''

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        api_version: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.shop_domain = shop_domain
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.timeout = timeout or settings.SHOPIFY_HTTP_TIMEOUT
        self.max_retries = max(0, int(settings.SHOPIFY_HTTP_RETRIES if max_retries is None else max_retries))
        self.backoff_ms = max(50, int(backoff_ms or settings.SHOPIFY_HTTP_BACKOFF_MS))
        self._access_token = access_token
        self._session = session or requests.Session()
        self._sleep = sleep

    @property
    def base_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}"

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Shopify-Access-Token": self._access_token,
            "User-Agent": "EbayCatalogSync/ShopifyStoreClient (+python)",
        }

    def close(self) -> None:
        self._session.close()


    # ---------------- 传输层：统一重试 + 日志 ----------------

    def _backoff_seconds(self, attempt: int) -> float:
        return (self.backoff_ms / 1000.0) * (2 ** attempt)

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[dict] = None,
        params: Optional[dict] = None,
        op_name: str = "",
        idempotent: bool = True,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"

        for attempt in range(self.max_retries + 1):
            start = time.perf_counter()
            try:
                resp = self._session.request(
                    method,
                    url,
                    headers=self._headers(),
                    json=json_body,
                    params=params,
                    timeout=self.timeout,
                )
            except (Timeout, RequestException) as e:
                latency_ms = int((time.perf_counter() - start) * 1000)
                logger.warning(
                    "shopify.request_exception op=%s latency_ms=%s attempt=%s/%s err=%s",
                    op_name, latency_ms, attempt, self.max_retries, type(e).__name__)
                if idempotent and attempt < self.max_retries:
                    self._sleep(self._backoff_seconds(attempt))
                    continue
                raise ShopifyRequestError(f"{op_name or method} request error: {e}") from e

            latency_ms = int((time.perf_counter() - start) * 1000)
            status = resp.status_code

            # 429：读 Retry-After（秒）；没有就按指数退避
            if status == 429 and attempt < self.max_retries:
                retry_after = resp.headers.get("Retry-After")
                try:
                    sleep_s = max(0.1, float(retry_after))
                except (TypeError, ValueError):
                    sleep_s = self._backoff_seconds(attempt)
                logger.warning(
                    "shopify.429_throttled op=%s latency_ms=%s attempt=%s/%s retry_after=%s",
                    op_name, latency_ms, attempt, self.max_retries, retry_after)
                self._sleep(sleep_s)
                continue

            if status >= 500 and idempotent and attempt < self.max_retries:
                logger.warning(
                    "shopify.server_error op=%s status=%s latency_ms=%s attempt=%s/%s",
                    op_name, status, latency_ms, attempt, self.max_retries)
                self._sleep(self._backoff_seconds(attempt))
                continue

            if status >= 400:
                body = (resp.text or "")[:500]
                logger.warning(
                    "shopify.http_error op=%s status=%s latency_ms=%s attempt=%s/%s",
                    op_name, status, latency_ms, attempt, self.max_retries)
                raise ShopifyHTTPError(status, body, op_name=op_name)

            try:
                data = resp.json()
            except ValueError as e:
                raise ShopifyPayloadError(
                    f"{op_name or method} non-JSON response (status={status}): {(resp.text or '')[:300]}"
                ) from e

            logger.info("shopify.ok op=%s status=%s latency_ms=%s attempt=%s", op_name, status, latency_ms, attempt)
            return data if isinstance(data, dict) else {"data": data}

        # 理论上不会走到这里
        raise ShopifyRequestError(f"{op_name or method} exhausted retries")

    def _post_graphql(self, query: str, variables: Optional[dict] = None, *, op_name: str = "") -> dict:
        payload = {"query": query, "variables": variables or {}}
        data = self._request("POST", "graphql.json", json_body=payload, op_name=op_name, idempotent=True)
        if data.get("errors"):
            logger.error("shopify.graphql.gql_errors op=%s errors=%s", op_name, data["errors"])
            raise ShopifyGraphQLError(f"GraphQL Error: {data['errors']}")
        return data


    # ---------------- 业务方法 ----------------

    # 基础连通性探测（token/域名/版本是否正确）
    def ping(self) -> dict:
        return self._post_graphql(SHOP_PING, op_name="shop.ping")

    def find_product_by_sku(self, sku: str) -> Optional[str]:
        """
        Return the numeric product id owning a variant whose SKU equals `sku` exactly, or None.
        Ties resolve to the first matching edge.
        """
        data = self._post_graphql(
            PRODUCT_VARIANTS_BY_SKU,
            {"query": sku_search_query(sku), "first": SKU_LOOKUP_WINDOW},
            op_name="productVariants.bySku",
        )
        edges = (((data.get("data") or {}).get("productVariants") or {}).get("edges")) or []
        for edge in edges:
            node = (edge or {}).get("node") or {}
            if node.get("sku") != sku:
                continue
            product_id = gid_to_numeric_id((node.get("product") or {}).get("id"))
            if product_id:
                return product_id
        return None

    def create_product(self, product_payload: dict) -> dict:
        data = self._request(
            "POST", "products.json",
            json_body={"product": product_payload},
            op_name="products.create",
            idempotent=False,
        )
        return self._unwrap(data, "product", "products.create")

    def update_product(self, product_id: str, product_payload: dict) -> dict:
        data = self._request(
            "PUT", f"products/{product_id}.json",
            json_body={"product": product_payload},
            op_name="products.update",
        )
        return self._unwrap(data, "product", "products.update")

    def add_product_image(self, product_id: str, src: str, alt: Optional[str] = None, position: Optional[int] = None) -> dict:
        image: Dict[str, Any] = {"src": src, "alt": alt or DEFAULT_IMAGE_ALT}
        if position:
            image["position"] = position
        data = self._request(
            "POST", f"products/{product_id}/images.json",
            json_body={"image": image},
            op_name="products.images.create",
            idempotent=False,
        )
        return self._unwrap(data, "image", "products.images.create")

    def list_locations(self) -> List[dict]:
        data = self._request("GET", "locations.json", op_name="locations.list")
        return list(data.get("locations") or [])

    def set_inventory_level(self, location_id: int | str, inventory_item_id: int | str, available: int) -> dict:
        # set 是绝对值写入，重放结果一致，可以按幂等处理
        data = self._request(
            "POST", "inventory_levels/set.json",
            json_body={
                "location_id": location_id,
                "inventory_item_id": inventory_item_id,
                "available": int(available),
            },
            op_name="inventory_levels.set",
            idempotent=True,
        )
        return self._unwrap(data, "inventory_level", "inventory_levels.set")

    @staticmethod
    def _unwrap(data: dict, key: str, op_name: str) -> dict:
        node = data.get(key)
        if not isinstance(node, dict):
            raise ShopifyPayloadError(f"{op_name} response missing '{key}'")
        return node
