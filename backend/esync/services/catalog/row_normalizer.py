"""
行规范化（纯函数）：把 CSV / JSON 扁平行按 handle 分组成 Product（含 variants / options / images）。

    - 表头容错：小写 + 去掉所有非字母数字，"Body (HTML)" ≡ "bodyhtml"
    - 固定映射表 FIELD_MAP：规范化后的 key → 规范字段；未知列直接忽略
    - 无 handle 的行跳过（无法分组）
    - 变体按 (option1, option2, option3) 去重，先到先得（后面的重复行即使字段更全也丢弃）
    - 图片按 src 去重
    - 输出顺序 = handle 首次出现的顺序
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from esync.services.catalog.product import (
    MAX_OPTIONS,
    OPTION_NAME_SUPPRESSED,
    PRODUCT_STATUSES,
    Product,
    ProductImage,
    ProductOption,
    ProductVariant,
)

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")

# scope: product / variant / option / image
FIELD_MAP: Dict[str, Tuple[str, str]] = {
    # product
    "handle": ("product", "handle"),
    "title": ("product", "title"),
    "bodyhtml": ("product", "body_html"),
    "vendor": ("product", "vendor"),
    "type": ("product", "product_type"),
    "producttype": ("product", "product_type"),
    "tags": ("product", "tags"),
    "status": ("product", "status"),
    "giftcard": ("product", "gift_card"),
    # variant
    "option1value": ("variant", "option1"),
    "option2value": ("variant", "option2"),
    "option3value": ("variant", "option3"),
    "variantsku": ("variant", "sku"),
    "variantgrams": ("variant", "grams"),
    "variantinventorytracker": ("variant", "inventory_management"),
    "variantinventoryqty": ("variant", "inventory_qty"),
    "variantinventorypolicy": ("variant", "inventory_policy"),
    "variantfulfillmentservice": ("variant", "fulfillment_service"),
    "variantprice": ("variant", "price"),
    "variantcompareatprice": ("variant", "compare_at_price"),
    "variantrequiresshipping": ("variant", "requires_shipping"),
    "varianttaxable": ("variant", "taxable"),
    "variantbarcode": ("variant", "barcode"),
    "variantimage": ("variant", "image"),
    # option names
    "option1name": ("option", "option1"),
    "option2name": ("option", "option2"),
    "option3name": ("option", "option3"),
    # gallery
    "imagesrc": ("image", "src"),
    "imagealttext": ("image", "alt"),
    "imageposition": ("image", "position"),
}

_PRODUCT_TEXT_FIELDS = ("title", "body_html", "vendor", "product_type", "tags")


# ---------------- 基础解析 ----------------

def normalize_key(key: Any) -> str:
    return _NON_ALNUM.sub("", str(key).lower())


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    return text or None


def parse_bool(value: Any, default: bool) -> bool:
    """'true'/'false' (any case) → bool; absent or unrecognised → default."""
    if isinstance(value, bool):
        return value
    text = _to_text(value)
    if text is None:
        return default
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return default


def parse_int(value: Any) -> Optional[int]:
    text = _to_text(value)
    if text is None:
        return None
    try:
        return int(float(text))
    except (TypeError, ValueError):
        return None


def _resolve_row(row: Mapping[str, Any]) -> Dict[Tuple[str, str], Any]:
    """Map one raw row onto canonical (scope, field) slots; first non-empty spelling wins."""
    resolved: Dict[Tuple[str, str], Any] = {}
    for raw_key, raw_value in row.items():
        if raw_key is None or raw_key == "":
            continue
        slot = FIELD_MAP.get(normalize_key(raw_key))
        if slot is None:
            continue
        value = raw_value if isinstance(raw_value, bool) else _to_text(raw_value)
        if value is None or slot in resolved:
            continue
        resolved[slot] = value
    return resolved


# ---------------- 分组 ----------------

def _resolve_status(row_status: Any, options: Mapping[str, Any]) -> str:
    # 优先级：同步策略里的 status > 行里的 Status 列 > active
    for candidate in (options.get("status"), row_status):
        text = _to_text(candidate)
        if text and text.lower() in PRODUCT_STATUSES:
            return text.lower()
    return "active"


def _seed_product(handle: str, slots: Dict[Tuple[str, str], Any], options: Mapping[str, Any]) -> Product:
    product = Product(handle=handle)
    for name in _PRODUCT_TEXT_FIELDS:
        setattr(product, name, slots.get(("product", name)))
    product.status = _resolve_status(slots.get(("product", "status")), options)
    product.gift_card = parse_bool(slots.get(("product", "gift_card")), default=False)
    return product


def _fold_metadata(product: Product, slots: Dict[Tuple[str, str], Any]) -> None:
    # 后续行只补空字段，不覆盖首行
    for name in _PRODUCT_TEXT_FIELDS:
        if getattr(product, name) is None and slots.get(("product", name)) is not None:
            setattr(product, name, slots[("product", name)])


def _build_variant(slots: Dict[Tuple[str, str], Any]) -> ProductVariant:
    get = lambda f: slots.get(("variant", f))  # noqa: E731
    return ProductVariant(
        price=get("price"),
        compare_at_price=get("compare_at_price"),
        sku=get("sku"),
        grams=get("grams"),
        inventory_management=get("inventory_management") or "shopify",
        inventory_qty=parse_int(get("inventory_qty")),
        inventory_policy=get("inventory_policy") or "deny",
        fulfillment_service=get("fulfillment_service") or "manual",
        requires_shipping=parse_bool(get("requires_shipping"), default=True),
        taxable=parse_bool(get("taxable"), default=True),
        barcode=get("barcode"),
        option1=get("option1"),
        option2=get("option2"),
        option3=get("option3"),
        image=get("image"),
    )


def _capture_options(product: Product, slots: Dict[Tuple[str, str], Any]) -> None:
    if product.options:
        return
    names: List[str] = []
    for idx in range(1, MAX_OPTIONS + 1):
        name = slots.get(("option", f"option{idx}"))
        if not name:
            continue
        if idx == 1 and name == OPTION_NAME_SUPPRESSED:
            continue
        names.append(name)
    product.options = [ProductOption(name=n) for n in names]


def _capture_image(product: Product, slots: Dict[Tuple[str, str], Any]) -> None:
    src = slots.get(("image", "src"))
    if not src:
        return
    position = parse_int(slots.get(("image", "position")))
    product.add_image(
        ProductImage(
            src=src,
            alt=slots.get(("image", "alt")),
            position=position if position and position > 0 else None,
        )
    )


def normalize_rows(rows: Iterable[Mapping[str, Any]], options: Optional[Mapping[str, Any]] = None) -> List[Product]:
    """
    Group loosely-keyed rows into canonical products keyed by handle.
    Pure transformation, no I/O.
    """
    options = options or {}
    groups: Dict[str, Product] = {}
    skipped = 0

    for row in rows:
        if not isinstance(row, Mapping):
            skipped += 1
            continue
        slots = _resolve_row(row)

        # 1) 没有 handle 的行无法分组
        handle = slots.get(("product", "handle"))
        if not handle:
            skipped += 1
            continue

        # 2) 首行建 Product，后续行补元数据
        product = groups.get(handle)
        if product is None:
            product = _seed_product(handle, slots, options)
            groups[handle] = product
        else:
            _fold_metadata(product, slots)

        # 3) 变体：有 option1 值或价格才算变体行
        if slots.get(("variant", "option1")) or slots.get(("variant", "price")):
            product.add_variant(_build_variant(slots))

        # 4) option 名只取一次；5) 图片
        _capture_options(product, slots)
        _capture_image(product, slots)

    if skipped:
        logger.info("row_normalizer.skipped rows=%s reason=no_handle_or_not_mapping", skipped)
    return list(groups.values())
