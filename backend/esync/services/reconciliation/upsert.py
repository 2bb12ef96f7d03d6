"""
按 SKU 的 create-or-update（Shopify 没有原生 upsert）：

    1) 解析 SKU（解析不出直接失败，不发任何请求）
    2) 可选标题改写（坏正则 → 原标题 + warning）
    3) find-by-SKU（全等匹配，取第一条）
    4) 找到 → PUT 更新；找不到 → POST 创建（同一个载荷函数）
    5) 副作用：图片按 src 去重后再上传；库存 > 0 才设置（先查 location 再 set）

任何一步远端失败都整体失败，返回结构化结果，不向调用方抛异常。
本层不做重试；传输层重试由 ShopifyStoreClient 自己负责。
"""
from __future__ import annotations

import contextlib
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Union

import redis

from esync.core.config import settings
from esync.infrastructure.locks import RedisSkuLock, SkuLockBusy
from esync.integrations.shopify import ShopCredential, ShopifyError, ShopifyPayloadError, ShopifyStoreClient
from esync.services.catalog.product import Product
from esync.services.reconciliation.options import UpsertOptions
from esync.services.reconciliation.payload import (
    build_product_payload,
    images_to_attach,
    requested_quantities,
    resolve_sku,
    rewrite_title,
)
from esync.utils.serialization import to_error_text

logger = logging.getLogger(__name__)

SKU_UNRESOLVED_ERROR = "SKU could not be determined for upsertProduct."


class CatalogClient(Protocol):
    """The six remote catalog calls the engine needs."""

    def find_product_by_sku(self, sku: str) -> Optional[str]: ...
    def create_product(self, product_payload: dict) -> dict: ...
    def update_product(self, product_id: str, product_payload: dict) -> dict: ...
    def add_product_image(self, product_id: str, src: str, alt: Optional[str] = None, position: Optional[int] = None) -> dict: ...
    def list_locations(self) -> List[dict]: ...
    def set_inventory_level(self, location_id: Any, inventory_item_id: Any, available: int) -> dict: ...


@dataclass(slots=True)
class UpsertResult:
    success: bool
    action: Optional[str] = None          # created / updated
    data: Optional[Dict[str, Any]] = None  # Shopify product
    error: Optional[str] = None
    sku: Optional[str] = None

    @property
    def product_id(self) -> Optional[str]:
        if self.data and self.data.get("id") is not None:
            return str(self.data["id"])
        return None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "sku": self.sku}
        if self.success:
            out.update(action=self.action, data=self.data)
        else:
            out["error"] = self.error
        return out


class ProductUpserter:

    def __init__(
        self,
        client: CatalogClient,
        *,
        shop_domain: str = "",
        sku_lock: Optional[RedisSkuLock] = None,
    ) -> None:
        self.client = client
        self.shop_domain = shop_domain or getattr(client, "shop_domain", "")
        self.sku_lock = sku_lock

    # ---------------- 主流程 ----------------
    def upsert(self, product: Product, options: Union[UpsertOptions, Mapping[str, Any], None] = None) -> UpsertResult:
        opts = options if isinstance(options, UpsertOptions) else UpsertOptions.from_mapping(options)

        # 1) SKU
        sku = resolve_sku(product, opts.sku_source)
        if not sku:
            logger.error(
                "upsert.sku_unresolved shop=%s sku_source=%s legacy_item_id=%s epid=%s",
                self.shop_domain, opts.sku_source, product.legacy_item_id, product.epid)
            return UpsertResult(success=False, error=SKU_UNRESOLVED_ERROR)

        # 2) 标题改写（不改调用方传入的对象）
        new_title = rewrite_title(product.title, opts)
        if new_title != product.title:
            product = dataclasses.replace(product, title=new_title)

        logger.info("upsert.start shop=%s sku=%s", self.shop_domain, sku)
        try:
            # 3) + 4) check-then-write（可选 SKU 锁缩小竞态窗口）
            with self._sku_guard(sku):
                existing_id = self.client.find_product_by_sku(sku)
                payload = build_product_payload(product, sku, opts)
                if existing_id:
                    logger.info("upsert.found shop=%s sku=%s product_id=%s; updating", self.shop_domain, sku, existing_id)
                    remote = self.client.update_product(existing_id, payload)
                    action = "updated"
                else:
                    logger.info("upsert.not_found shop=%s sku=%s; creating", self.shop_domain, sku)
                    remote = self.client.create_product(payload)
                    action = "created"

            # 5) 依赖主对象的副作用
            self._attach_images(remote, product)
            self._set_inventory(remote, product, sku, opts)

        except (ShopifyError, SkuLockBusy, redis.RedisError) as e:
            logger.error("upsert.failed shop=%s sku=%s err=%s", self.shop_domain, sku, e)
            return UpsertResult(success=False, error=to_error_text(e), sku=sku)
        except Exception as e:
            logger.exception("upsert.unexpected_error shop=%s sku=%s", self.shop_domain, sku)
            return UpsertResult(success=False, error=to_error_text(e), sku=sku)

        logger.info("upsert.ok shop=%s sku=%s action=%s product_id=%s", self.shop_domain, sku, action, remote.get("id"))
        return UpsertResult(success=True, action=action, data=remote, sku=sku)

    def bulk_upsert(
        self,
        products: Iterable[Product],
        options: Union[UpsertOptions, Mapping[str, Any], None] = None,
        *,
        delay_ms: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> List[UpsertResult]:
        """Sequential upsert with a courtesy pause between products."""
        opts = options if isinstance(options, UpsertOptions) else UpsertOptions.from_mapping(options)
        delay = (settings.BULK_UPSERT_DELAY_MS if delay_ms is None else delay_ms) / 1000.0
        results: List[UpsertResult] = []
        for idx, product in enumerate(products):
            if idx and delay > 0:
                sleep(delay)
            results.append(self.upsert(product, opts))
        return results

    # ---------------- helpers ----------------
    def _sku_guard(self, sku: str):
        if self.sku_lock is None:
            return contextlib.nullcontext()
        return self.sku_lock.hold(self.shop_domain, sku)

    def _attach_images(self, remote: Dict[str, Any], product: Product) -> None:
        product_id = remote.get("id")
        existing = {img.get("src") for img in (remote.get("images") or []) if isinstance(img, dict)}
        for image in images_to_attach(product):
            if image.src in existing:
                logger.info("upsert.image_exists product_id=%s src=%s; skipping", product_id, image.src)
                continue
            self.client.add_product_image(str(product_id), image.src, image.alt, image.position)
            existing.add(image.src)

    def _set_inventory(self, remote: Dict[str, Any], product: Product, sku: str, opts: UpsertOptions) -> None:
        quantities = requested_quantities(product, sku, opts)
        if not quantities:
            return
        remote_variants = [v for v in (remote.get("variants") or []) if isinstance(v, dict)]
        if not remote_variants:
            return

        location_id = self._primary_location_id()
        for variant_sku, qty in quantities.items():
            target = next((v for v in remote_variants if v.get("sku") == variant_sku), None)
            if target is None and variant_sku == sku:
                target = remote_variants[0]
            if target is None or target.get("inventory_item_id") is None:
                logger.warning("upsert.inventory_variant_missing product_id=%s sku=%s", remote.get("id"), variant_sku)
                continue
            self.client.set_inventory_level(location_id, target["inventory_item_id"], qty)

    def _primary_location_id(self) -> Any:
        locations = self.client.list_locations()
        location = next((loc for loc in locations if loc.get("primary")), None) or (locations[0] if locations else None)
        if not location or location.get("id") is None:
            raise ShopifyPayloadError("No inventory location found")
        return location["id"]


def build_upserter(credential: ShopCredential) -> ProductUpserter:
    """Default factory: one Admin API client per shop credential, plus the optional SKU lock."""
    client = ShopifyStoreClient(credential.shop_domain, credential.access_token)
    return ProductUpserter(client, shop_domain=credential.shop_domain, sku_lock=RedisSkuLock.from_settings())
