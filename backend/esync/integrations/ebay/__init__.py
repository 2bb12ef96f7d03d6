"""
对外统一入口：上层只从这里 import，内部实现可自由演进。
"""

from .browse import EbayBrowseAPI, PreviewResult, SellerTotals
from .categories import EBAY_CATEGORIES
from .errors import (
    EbayAuthError, EbayClientError, EbayError, EbayPayloadError, EbayRateLimitError, EbayServerError
)
from .http_client import EbayHttpClient


__all__ = [
    "EbayBrowseAPI", "PreviewResult", "SellerTotals",
    "EbayHttpClient",
    "EBAY_CATEGORIES",
    "EbayError", "EbayAuthError", "EbayClientError", "EbayServerError", "EbayRateLimitError", "EbayPayloadError",
]
