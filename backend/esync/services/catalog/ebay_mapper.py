"""
eBay Browse API item（item_summary / getItem）→ 规范 Product 的纯映射。
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional

from esync.services.catalog.product import Product, ProductImage

_HANDLE_CLEAN = re.compile(r"[^a-z0-9]+")


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _image_urls(item: Mapping[str, Any]) -> List[str]:
    urls: List[str] = []
    primary = (item.get("image") or {}).get("imageUrl")
    if primary:
        urls.append(primary)
    for extra in item.get("additionalImages") or []:
        url = (extra or {}).get("imageUrl")
        if url and url not in urls:
            urls.append(url)
    return urls


def _available_quantity(item: Mapping[str, Any]) -> Optional[int]:
    for entry in item.get("estimatedAvailabilities") or []:
        qty = (entry or {}).get("estimatedAvailableQuantity")
        if isinstance(qty, (int, float)) and qty >= 0:
            return int(qty)
    return None


def ebay_handle(title: Optional[str], legacy_item_id: Optional[str]) -> Optional[str]:
    base = _HANDLE_CLEAN.sub("-", (title or "").lower()).strip("-")[:80].strip("-")
    if legacy_item_id:
        return f"{base}-{legacy_item_id}" if base else f"ebay-{legacy_item_id}"
    return base or None


def product_from_ebay_item(item: Mapping[str, Any]) -> Product:
    """Map one Browse API item into a canonical Product (variants are left to the payload builder)."""
    legacy_item_id = _str_or_none(item.get("legacyItemId"))
    title = _str_or_none(item.get("title"))
    price: Dict[str, Any] = item.get("price") or {}

    product = Product(
        handle=ebay_handle(title, legacy_item_id),
        title=title,
        body_html=item.get("shortDescription") or "",
        legacy_item_id=legacy_item_id,
        epid=_str_or_none(item.get("epid")),
        condition=_str_or_none(item.get("condition")),
        categories=[
            c["categoryName"]
            for c in (item.get("categories") or [])
            if isinstance(c, Mapping) and c.get("categoryName")
        ],
        seller_username=_str_or_none((item.get("seller") or {}).get("username")),
        price=_str_or_none(price.get("value")),
        currency=_str_or_none(price.get("currency")),
        quantity=_available_quantity(item),
    )
    for url in _image_urls(item):
        product.add_image(ProductImage(src=url, alt="Product Image"))
    return product
