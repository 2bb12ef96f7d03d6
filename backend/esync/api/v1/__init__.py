from fastapi import APIRouter


# 非店铺上下文路由（探活 / Shopify 服务器回调）
from .routes_health import router as health_router
from .webhooks_shopify import router as webhooks_router


# 店铺上下文路由（依赖 X-Shop-Domain）
from .jobs import router as jobs_router
from .imports import router as imports_router
from .ebay import router as ebay_router


api_v1 = APIRouter()
api_v1.include_router(health_router)      # /health
api_v1.include_router(webhooks_router)    # /webhooks/shopify/{topic}，HMAC 校验

api_v1.include_router(jobs_router)
api_v1.include_router(imports_router)
api_v1.include_router(ebay_router)
