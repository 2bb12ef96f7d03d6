# esync/api/v1/webhooks_shopify.py

from __future__ import annotations
import base64, hashlib, hmac, json, logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from esync.core.config import settings
from esync.db.session import get_db
from esync.repository import job_repo, session_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/shopify", tags=["webhooks.shopify"])


'''
合规 + 卸载 webhook（Shopify 要求 5 秒内返回 200）：
  - customers/data_request, customers/redact：不保存顾客数据，直接确认
  - shop/redact：删除该店铺的 jobs / imports / sessions
  - app/uninstalled：删除店铺 session（历史 job 保留，等 shop/redact 再删）
'''
ACK_ONLY_TOPICS = {"customers/data_request", "customers/redact"}


# =============== 公共：HMAC 校验（Shopify Webhook 签名） ===============
def _compute_hmac_base64(secret: str, raw_body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def _verify_hmac_or_401(provided_hmac_b64: str, raw_body: bytes) -> None:
    if not provided_hmac_b64:
        raise HTTPException(status_code=401, detail="Missing HMAC")
    if settings.SHOPIFY_WEBHOOK_SECRET is None:
        # 没配 secret 时任何签名都不可信
        raise HTTPException(status_code=401, detail="Webhook secret not configured")

    expected = _compute_hmac_base64(settings.SHOPIFY_WEBHOOK_SECRET.get_secret_value(), raw_body)
    if not hmac.compare_digest(provided_hmac_b64, expected):
        raise HTTPException(status_code=401, detail="Invalid HMAC")


@router.post("/{topic:path}")
async def shopify_webhook(
    topic: str,
    request: Request,
    x_shopify_hmac_sha256: str = Header(default=""),
    x_shopify_topic: str = Header(default=""),
    x_shopify_shop_domain: str = Header(default=""),
    db: Session = Depends(get_db),
):
    # 1) 先做 HMAC 校验，再看 Topic，避免用任意 Topic 绕过校验
    raw = await request.body()
    _verify_hmac_or_401(x_shopify_hmac_sha256, raw)

    # 2) Topic 以 header 为准（大小写不敏感），路径只是路由
    topic = (x_shopify_topic or topic or "").strip().lower()

    # 3) 解析 payload
    try:
        payload = json.loads(raw.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        payload = {}

    shop = (x_shopify_shop_domain or payload.get("shop_domain") or payload.get("myshopify_domain") or "").strip().lower()

    if topic in ACK_ONLY_TOPICS:
        logger.info("webhooks.ack topic=%s shop=%s", topic, shop)
        return {"ok": True, "topic": topic}

    if not shop:
        raise HTTPException(status_code=400, detail="Missing shop domain")

    # 4) 分发
    if topic == "shop/redact":
        deleted = job_repo.redact_shop(db, shop)
        return {"ok": True, "topic": topic, "deleted": deleted}

    if topic == "app/uninstalled":
        removed = session_repo.delete_sessions(db, shop)
        return {"ok": True, "topic": topic, "sessions": removed}

    # 非本应用订阅的主题：快速 200，避免 Shopify 重试
    logger.info("webhooks.ignored topic=%s shop=%s", topic, shop)
    return {"ok": True, "ignored": f"topic={topic}"}
