"""
对外统一入口：Shopify Admin API 客户端、凭证与异常。
"""

from .credentials import ShopCredential
from .shopify_client import ShopifyStoreClient
from .errors import (
    ShopifyError, ShopifyHTTPError, ShopifyGraphQLError, ShopifyPayloadError, ShopifyRequestError
)

__all__ = [
    "ShopCredential",
    "ShopifyStoreClient",
    "ShopifyError", "ShopifyHTTPError", "ShopifyGraphQLError", "ShopifyPayloadError", "ShopifyRequestError",
]
