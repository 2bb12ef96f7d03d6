# 路由共用依赖：当前店铺 / eBay 客户端 / upserter 工厂（测试里用 dependency_overrides 替换）

from __future__ import annotations
import re
from typing import Callable

from fastapi import Header, HTTPException

from esync.integrations.ebay import EbayBrowseAPI
from esync.integrations.shopify import ShopCredential
from esync.services.reconciliation import ProductUpserter, build_upserter


_SHOP_DOMAIN = re.compile(r"^[a-z0-9][a-z0-9\-]*\.myshopify\.com$")


'''
当前店铺：嵌入式 App 的会话校验在网关 / 前端壳里完成，这里只认 X-Shop-Domain 头
'''
def get_current_shop(x_shop_domain: str = Header(default="")) -> str:
    shop = (x_shop_domain or "").strip().lower()
    if not shop:
        raise HTTPException(status_code=401, detail="Unauthorized: missing shop")
    if not _SHOP_DOMAIN.match(shop):
        raise HTTPException(status_code=400, detail="Invalid shop domain")
    return shop


def get_browse_api() -> EbayBrowseAPI:
    return EbayBrowseAPI()


def get_upserter_factory() -> Callable[[ShopCredential], ProductUpserter]:
    return build_upserter
