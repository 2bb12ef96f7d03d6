"""
规范化后的商品实体（内存态；落库时序列化进 Import.product_data）

字段名沿用 Shopify REST 的 snake_case，便于直接对照 products.json。
同一个 Product 既可以来自 CSV 行分组，也可以来自 eBay item summary；
后者额外带上 legacy_item_id / epid / condition / categories / seller_username。
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional


PRODUCT_STATUSES = ("active", "draft", "archived")
OPTION_NAME_SUPPRESSED = "Title"   # 单变体商品 Shopify 导出时的占位 option 名
MAX_OPTIONS = 3


def _pick(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    # 只保留 dataclass 认识的键；未知键直接忽略
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in names}


@dataclass(slots=True)
class ProductImage:
    src: str
    alt: Optional[str] = None
    position: Optional[int] = None


@dataclass(slots=True)
class ProductOption:
    name: str


@dataclass(slots=True)
class ProductVariant:
    price: Optional[str] = None
    compare_at_price: Optional[str] = None
    sku: Optional[str] = None
    grams: Optional[str] = None
    inventory_management: Optional[str] = "shopify"
    inventory_qty: Optional[int] = None
    inventory_policy: Optional[str] = "deny"
    fulfillment_service: Optional[str] = "manual"
    requires_shipping: bool = True
    taxable: bool = True
    barcode: Optional[str] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    image: Optional[str] = None

    @property
    def option_key(self) -> tuple:
        """Variant uniqueness key within a product."""
        return (self.option1, self.option2, self.option3)


@dataclass(slots=True)
class Product:
    handle: Optional[str] = None
    title: Optional[str] = None
    body_html: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: Optional[str] = None
    status: str = "active"
    gift_card: bool = False
    variants: List[ProductVariant] = field(default_factory=list)
    options: List[ProductOption] = field(default_factory=list)
    images: List[ProductImage] = field(default_factory=list)

    # ---- 来自 marketplace（eBay）的标识 / 元数据 ----
    legacy_item_id: Optional[str] = None
    epid: Optional[str] = None
    condition: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    seller_username: Optional[str] = None
    price: Optional[str] = None
    currency: Optional[str] = None
    quantity: Optional[int] = None

    # ---------- 去重辅助 ----------
    def add_variant(self, variant: ProductVariant) -> bool:
        """Append unless a variant with the same option triple exists (first write wins)."""
        key = variant.option_key
        if any(v.option_key == key for v in self.variants):
            return False
        self.variants.append(variant)
        return True

    def add_image(self, image: ProductImage) -> bool:
        """Append unless an image with the same src exists."""
        if any(img.src == image.src for img in self.images):
            return False
        self.images.append(image)
        return True

    @property
    def first_variant_sku(self) -> Optional[str]:
        for v in self.variants:
            if v.sku:
                return str(v.sku)
        return None

    # ---------- 序列化 ----------
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        base = _pick(cls, data)
        base["variants"] = [ProductVariant(**_pick(ProductVariant, v)) for v in (data.get("variants") or [])]
        base["options"] = [ProductOption(**_pick(ProductOption, o)) for o in (data.get("options") or []) if o.get("name")]
        base["images"] = [ProductImage(**_pick(ProductImage, i)) for i in (data.get("images") or []) if i.get("src")]
        base["categories"] = [str(c) for c in (data.get("categories") or []) if c]
        return cls(**base)
