from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ShopCredential:
    """Offline Admin API access for one shop."""
    shop_domain: str
    access_token: str

    def __repr__(self) -> str:
        # 日志里不打印 token
        return f"ShopCredential(shop_domain={self.shop_domain!r})"
