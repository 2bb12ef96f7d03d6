from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from esync.db.base import Base


def offline_session_id(shop_domain: str) -> str:
    # 与 Shopify 官方库的 offline session id 规则一致
    return f"offline_{shop_domain}"


"""
  店铺的 Shopify 访问凭证（OAuth 安装流程写入；这里只读）
"""
class ShopSession(Base):
    __tablename__ = "shop_sessions"

    id:           Mapped[str] = mapped_column(String(255), primary_key=True)
    shop_domain:  Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scope:        Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    is_online:    Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
