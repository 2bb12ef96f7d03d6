"""
对外统一入口：规范商品实体 + 行规范化 + eBay 映射（纯函数，无 I/O）。
"""

from .product import Product, ProductVariant, ProductOption, ProductImage
from .row_normalizer import normalize_rows
from .ebay_mapper import product_from_ebay_item

__all__ = [
    "Product", "ProductVariant", "ProductOption", "ProductImage",
    "normalize_rows", "product_from_ebay_item",
]
