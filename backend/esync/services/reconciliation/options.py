"""
同步策略（Job.options 的结构化视图）。

Job 上存的是请求时的原始 JSON（camelCase，前端直接传来的），这里只负责解析成 dataclass；
未知键忽略，缺省值与导入页面的默认值一致。
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from esync.core.config import settings
from esync.integrations.shopify.payload_utils import normalize_tags


SKU_SOURCE_EPIN = "epin"
SKU_SOURCE_LEGACY = "legacyItemId"
SKU_SOURCE_VARIANT = "variantSku"

PRODUCT_TYPE_FIRST_CATEGORY = "firstCategory"
PRODUCT_TYPE_MANUAL = "manual"

# camelCase（前端）→ snake_case（dataclass）
_ALIASES: Dict[str, str] = {
    "skuSource": "sku_source",
    "rewriteTitles": "rewrite_titles",
    "rewriteFind": "rewrite_find",
    "rewriteReplace": "rewrite_replace",
    "rewriteIsRegex": "rewrite_is_regex",
    "defaultQuantity": "default_quantity",
    "appendTags": "append_tags",
    "inventoryPolicy": "inventory_policy",
    "defaultVendor": "default_vendor",
    "productTypeSource": "product_type_source",
    "manualProductType": "manual_product_type",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _as_int(value: Any) -> int:
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0


@dataclass(slots=True)
class UpsertOptions:
    sku_source: Optional[str] = None
    rewrite_titles: bool = False
    rewrite_find: Optional[str] = None
    rewrite_replace: str = ""
    rewrite_is_regex: bool = False
    default_quantity: int = 0
    append_tags: List[str] = field(default_factory=list)
    status: Optional[str] = None
    inventory_policy: str = "deny"
    default_vendor: str = field(default_factory=lambda: settings.DEFAULT_VENDOR)
    product_type_source: str = PRODUCT_TYPE_FIRST_CATEGORY
    manual_product_type: str = ""

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "UpsertOptions":
        data: Dict[str, Any] = {}
        for key, value in (raw or {}).items():
            name = _ALIASES.get(key, key)
            if name in cls.__dataclass_fields__ and value is not None:
                data[name] = value

        opts = cls()
        opts.sku_source = data.get("sku_source") or None
        opts.rewrite_titles = _as_bool(data.get("rewrite_titles", False))
        opts.rewrite_find = data.get("rewrite_find") or None
        opts.rewrite_replace = str(data.get("rewrite_replace") or "")
        opts.rewrite_is_regex = _as_bool(data.get("rewrite_is_regex", False))
        opts.default_quantity = _as_int(data.get("default_quantity", 0))
        opts.append_tags = normalize_tags(data.get("append_tags"))
        opts.status = data.get("status") or None
        opts.inventory_policy = data.get("inventory_policy") or "deny"
        opts.default_vendor = data.get("default_vendor") or settings.DEFAULT_VENDOR
        opts.product_type_source = data.get("product_type_source") or PRODUCT_TYPE_FIRST_CATEGORY
        opts.manual_product_type = data.get("manual_product_type") or ""
        return opts

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
