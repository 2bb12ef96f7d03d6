from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esync.db.base import Base


# Postgres 用 JSONB；测试用的 SQLite 退回通用 JSON
JSONType = JSON().with_variant(JSONB(), "postgresql")


class JobStatus(str):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"          # 旧数据里的 PROCESSING 同义，统一写 RUNNING
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    ACTIVE = (QUEUED, RUNNING)                    # worker 可以认领 / 允许取消
    TERMINAL = (COMPLETED, FAILED, CANCELLED)


class ImportStatus(str):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ImportAction(str):
    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


def _new_job_id() -> str:
    return str(uuid.uuid4())


"""
  一次批量同步（Job）：计数器只允许原子自增，processed = succeeded + failed
"""
class Job(Base):
    __tablename__ = "sync_jobs"

    id:          Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_job_id)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    status:      Mapped[str] = mapped_column(
        SAEnum(
            JobStatus.QUEUED,
            JobStatus.RUNNING,
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
            name="sync_job_status",
        ),
        nullable=False,
        default=JobStatus.QUEUED,
        server_default=JobStatus.QUEUED,
    )

    total:     Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    succeeded: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    failed:    Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    options: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)   # 请求时的同步策略快照
    error:   Mapped[Optional[str]] = mapped_column(Text, nullable=True)                      # Job 级错误（缺凭证等）

    created_at:  Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at:  Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    imports: Mapped[List["Import"]] = relationship(
        "Import",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_sync_jobs_status_created", "status", "created_at"),
        Index("ix_sync_jobs_shop_status_created", "shop_domain", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Job id={self.id} status={self.status} "
            f"{self.processed}/{self.total} ok={self.succeeded} fail={self.failed}>"
        )


"""
  每个规范化后的 Product 一条 Import；PENDING → SUCCESS / FAILED 只发生一次
"""
class Import(Base):
    __tablename__ = "sync_imports"

    id:          Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)
    job_id:      Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("sync_jobs.id", ondelete="CASCADE"),
        nullable=True,              # 单条同步（不挂 Job）时为空
    )
    status: Mapped[str] = mapped_column(
        SAEnum(
            ImportStatus.PENDING,
            ImportStatus.SUCCESS,
            ImportStatus.FAILED,
            name="sync_import_status",
        ),
        nullable=False,
        default=ImportStatus.PENDING,
        server_default=ImportStatus.PENDING,
    )

    product_data:       Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    shopify_product_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    title:              Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    sku:                Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    action:             Mapped[Optional[str]] = mapped_column(String(16), nullable=True)     # created / updated / failed
    error:              Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    job: Mapped[Optional[Job]] = relationship("Job", back_populates="imports")

    __table_args__ = (
        Index("ix_sync_imports_job_status", "job_id", "status"),
        Index("ix_sync_imports_shop_created", "shop_domain", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Import id={self.id} job={self.job_id} status={self.status} sku={self.sku}>"
