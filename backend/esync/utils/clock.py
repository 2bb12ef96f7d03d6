from __future__ import annotations
from datetime import datetime, timezone


def now_utc() -> datetime:
    # 列都是 DateTime(timezone=True)，统一写带时区的 UTC
    return datetime.now(timezone.utc)
