"""
   Shopify 集成层专用异常类型。
   Reconciliation 层把它们统一转成可落库的纯文本错误，不向外抛。
"""


class ShopifyError(Exception):
    """Base for all Shopify errors."""


class ShopifyHTTPError(ShopifyError):
    """Non-2xx response after the transport retry budget."""

    def __init__(self, status: int, body: str, *, op_name: str = "") -> None:
        self.status = status
        self.body = body
        self.op_name = op_name
        super().__init__(f"HTTP {status}: {body}" if body else f"HTTP {status}")


class ShopifyGraphQLError(ShopifyError):
    """Top-level GraphQL errors (syntax, permissions)."""


class ShopifyPayloadError(ShopifyError):
    """Unexpected / non-JSON response body."""


class ShopifyRequestError(ShopifyError):
    """Network-level failure (timeout, connection reset) after retries."""
