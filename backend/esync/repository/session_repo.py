from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session

from esync.core.errors import MissingCredentialError
from esync.db.model.shop_session import ShopSession, offline_session_id
from esync.integrations.shopify.credentials import ShopCredential
from esync.utils.clock import now_utc

logger = logging.getLogger(__name__)


def load_offline_credential(db: Session, shop_domain: str) -> Optional[ShopCredential]:
    """Offline token of the shop, or None when the app is not installed."""
    stmt = select(ShopSession.access_token).where(
        ShopSession.id == offline_session_id(shop_domain),
        ShopSession.is_online.is_(False),
    )
    token = db.scalar(stmt)
    if not token:
        return None
    return ShopCredential(shop_domain=shop_domain, access_token=token)


def require_offline_credential(db: Session, shop_domain: str) -> ShopCredential:
    credential = load_offline_credential(db, shop_domain)
    if credential is None:
        raise MissingCredentialError(f"Missing session for shop {shop_domain}")
    return credential


def upsert_offline_session(db: Session, shop_domain: str, access_token: str, scope: Optional[str] = None) -> None:
    # 先 UPDATE，没命中再 INSERT（sqlite / postgres 通用）
    sid = offline_session_id(shop_domain)
    res = db.execute(
        update(ShopSession)
        .where(ShopSession.id == sid)
        .values(access_token=access_token, scope=scope, is_online=False, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        db.execute(
            insert(ShopSession).values(
                id=sid,
                shop_domain=shop_domain,
                access_token=access_token,
                scope=scope,
                is_online=False,
            )
        )
    db.commit()


def delete_sessions(db: Session, shop_domain: str) -> int:
    """app/uninstalled: drop every stored session of the shop."""
    res = db.execute(
        delete(ShopSession)
        .where(ShopSession.shop_domain == shop_domain)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("session_repo.sessions_deleted shop=%s count=%s", shop_domain, res.rowcount)
    return res.rowcount
