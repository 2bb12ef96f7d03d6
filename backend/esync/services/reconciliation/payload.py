"""
Product → Shopify REST products.json 载荷（纯函数）。

create / update 两条分支都只调用 build_product_payload，保证线上格式一致；
差别只在 HTTP 方法和目标路径。
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from esync.integrations.shopify.payload_utils import join_tags, normalize_shopify_price, normalize_tags
from esync.services.catalog.product import PRODUCT_STATUSES, Product, ProductImage, ProductVariant
from esync.services.reconciliation.options import (
    PRODUCT_TYPE_MANUAL,
    SKU_SOURCE_EPIN,
    SKU_SOURCE_VARIANT,
    UpsertOptions,
)

logger = logging.getLogger(__name__)

DEFAULT_PRICE = "0.00"
_JS_GROUP_REF = re.compile(r"\$(\d+)")


# ---------------- Step 1: SKU ----------------

def resolve_sku(product: Product, sku_source: Optional[str]) -> Optional[str]:
    """
    Pick the synchronisation key:
      epin        → epid, else legacyItemId
      variantSku  → first variant SKU
      default     → legacyItemId, else first variant SKU (CSV rows carry no marketplace id)
    """
    if sku_source == SKU_SOURCE_EPIN:
        return product.epid or product.legacy_item_id or None
    if sku_source == SKU_SOURCE_VARIANT:
        return product.first_variant_sku
    return product.legacy_item_id or product.first_variant_sku


# ---------------- Step 2: 标题改写 ----------------

def rewrite_title(title: Optional[str], options: UpsertOptions) -> Optional[str]:
    """Apply the configured find/replace; a malformed pattern keeps the original title."""
    if not title or not options.rewrite_titles or not options.rewrite_find:
        return title

    if not options.rewrite_is_regex:
        return title.replace(options.rewrite_find, options.rewrite_replace)

    # 前端按 JS 习惯写 $1，转成 Python 的 \g<1>
    replacement = _JS_GROUP_REF.sub(r"\\g<\1>", options.rewrite_replace.replace("\\", "\\\\"))
    try:
        return re.sub(options.rewrite_find, replacement, title)
    except (re.error, IndexError) as e:
        logger.warning(
            "payload.rewrite_title.invalid_pattern find=%r err=%s; using original title",
            options.rewrite_find, e)
        return title


# ---------------- 载荷拼装 ----------------

def assemble_tags(product: Product, options: UpsertOptions) -> str:
    tags: List[str] = []
    if product.condition:
        tags.append(product.condition)
    tags.extend(c for c in product.categories if c)
    tags.extend(normalize_tags(product.tags))
    tags.extend(options.append_tags)
    return join_tags(tags)


def resolve_product_type(product: Product, options: UpsertOptions) -> str:
    if options.product_type_source == PRODUCT_TYPE_MANUAL:
        return options.manual_product_type or ""
    if product.categories:
        return product.categories[0]
    return product.product_type or ""


def resolve_status(product: Product, options: UpsertOptions) -> str:
    for candidate in (options.status, product.status):
        if candidate and str(candidate).lower() in PRODUCT_STATUSES:
            return str(candidate).lower()
    return "active"


def _variant_payload(variant: ProductVariant, options: UpsertOptions, sku: Optional[str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "sku": variant.sku or sku,
        "price": normalize_shopify_price(variant.price) or DEFAULT_PRICE,
        "inventory_management": variant.inventory_management or "shopify",
        "inventory_policy": variant.inventory_policy or options.inventory_policy,
        "fulfillment_service": variant.fulfillment_service or "manual",
        "requires_shipping": variant.requires_shipping,
        "taxable": variant.taxable,
    }
    compare_at = normalize_shopify_price(variant.compare_at_price)
    if compare_at:
        out["compare_at_price"] = compare_at
    if variant.grams:
        try:
            out["grams"] = int(float(variant.grams))
        except (TypeError, ValueError):
            pass
    if variant.barcode:
        out["barcode"] = variant.barcode
    for idx, value in enumerate((variant.option1, variant.option2, variant.option3), start=1):
        if value:
            out[f"option{idx}"] = value
    return out


def _backfill_sku(product: Product, sku: Optional[str]) -> Optional[str]:
    # 同步键已经是别的变体自己的 SKU 时不再补，避免两个变体同一个 SKU
    if not sku or any(v.sku == sku for v in product.variants):
        return None
    return sku


def build_variants(product: Product, sku: str, options: UpsertOptions) -> List[Dict[str, Any]]:
    if not product.variants:
        # eBay item：单变体，SKU = 解析出的同步键
        return [{
            "sku": sku,
            "price": normalize_shopify_price(product.price) or DEFAULT_PRICE,
            "inventory_management": "shopify",
            "inventory_policy": options.inventory_policy,
        }]

    backfill = _backfill_sku(product, sku)
    variants: List[Dict[str, Any]] = []
    for idx, variant in enumerate(product.variants):
        # 第一个变体没 SKU 时补上同步键，保证下次 find-by-SKU 能命中
        variants.append(_variant_payload(variant, options, backfill if idx == 0 else None))
    return variants


def build_product_payload(product: Product, sku: str, options: UpsertOptions) -> Dict[str, Any]:
    """The single product → products.json transformation used by both create and update."""
    payload: Dict[str, Any] = {
        "title": product.title,
        "body_html": product.body_html or "",
        "product_type": resolve_product_type(product, options),
        "vendor": product.seller_username or product.vendor or options.default_vendor,
        "status": resolve_status(product, options),
        "variants": build_variants(product, sku, options),
    }
    if product.handle:
        payload["handle"] = product.handle
    if product.options and product.variants:
        payload["options"] = [{"name": o.name} for o in product.options]

    tags = assemble_tags(product, options)
    if tags:
        payload["tags"] = tags
    return payload


# ---------------- Step 5 输入 ----------------

def images_to_attach(product: Product) -> List[ProductImage]:
    """Gallery images plus variant images, deduplicated by src, gallery order first."""
    out: List[ProductImage] = list(product.images)
    seen = {img.src for img in out}
    for variant in product.variants:
        if variant.image and variant.image not in seen:
            seen.add(variant.image)
            out.append(ProductImage(src=variant.image))
    return out


def requested_quantities(product: Product, sku: str, options: UpsertOptions) -> Dict[str, int]:
    """SKU → positive quantity to set; variants without an explicit quantity use the default."""
    if not product.variants:
        return {sku: options.default_quantity} if options.default_quantity > 0 else {}

    backfill = _backfill_sku(product, sku)
    out: Dict[str, int] = {}
    for idx, variant in enumerate(product.variants):
        variant_sku = variant.sku or (backfill if idx == 0 else None)
        if not variant_sku:
            continue
        qty = variant.inventory_qty if variant.inventory_qty is not None else options.default_quantity
        if qty and qty > 0:
            out[variant_sku] = qty
    return out
