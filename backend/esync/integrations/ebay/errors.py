"""
   eBay 集成层专用异常类型。
   HTTP/鉴权/限流/载荷错误与业务层解耦；API 层统一映射为 502。
"""

class EbayError(Exception):
    """Base for all eBay errors."""

class EbayAuthError(EbayError):
    """OAuth client-credentials exchange failed or token cannot be refreshed."""

class EbayClientError(EbayError):
    """Network/client-side (4xx) errors after retries."""

class EbayServerError(EbayError):
    """Server-side (5xx) errors after retries."""

class EbayRateLimitError(EbayError):
    """429 Too Many Requests not resolved after retries."""

class EbayPayloadError(EbayError):
    """Unexpected/invalid response payload shape or content."""
