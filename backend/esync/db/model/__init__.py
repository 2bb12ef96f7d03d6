# 聚合导入所有模型，供 Alembic 发现

from .job import (
    Job,
    Import,
    JobStatus,
    ImportStatus,
    ImportAction,
)
from .shop_session import ShopSession, offline_session_id

__all__ = [
    # job ledger
    "Job", "Import", "JobStatus", "ImportStatus", "ImportAction",
    # credentials
    "ShopSession", "offline_session_id",
]
