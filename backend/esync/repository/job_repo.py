# sync job / import ledger repository

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.orm import Session

from esync.core.errors import InvalidTransitionError, JobNotFoundError
from esync.db.model.job import Import, ImportAction, ImportStatus, Job, JobStatus
from esync.db.model.shop_session import ShopSession
from esync.services.catalog.product import Product
from esync.utils.clock import now_utc
from esync.utils.serialization import to_error_text, to_jsonable

logger = logging.getLogger(__name__)

RECENT_IMPORTS_LIMIT = 50


@dataclass(slots=True)
class ImportOutcome:
    """Terminal result of one import, written exactly once."""
    success: bool
    shopify_product_id: Optional[str] = None
    action: Optional[str] = None
    error: Optional[str] = None
    title: Optional[str] = None
    sku: Optional[str] = None


def display_sku(product: Product) -> Optional[str]:
    return product.first_variant_sku or product.legacy_item_id or product.epid


# 所有 UPDATE 都是条件更新 + 原子自增，不把 ORM 对象同步进 session
_NO_SYNC = {"synchronize_session": False}


# ---------- Query ----------
def get_job(db: Session, job_id: str) -> Optional[Job]:
    # populate_existing：计数器是 UPDATE 直接写库的，identity map 里的对象可能是旧值
    return db.get(Job, job_id, populate_existing=True)


def get_job_for_shop(db: Session, job_id: str, shop_domain: str) -> Optional[Job]:
    job = get_job(db, job_id)
    if job is None or job.shop_domain != shop_domain:
        return None
    return job


def get_job_status(db: Session, job_id: str) -> Optional[str]:
    return db.scalar(select(Job.status).where(Job.id == job_id))


def list_recent_imports(db: Session, job_id: str, limit: int = RECENT_IMPORTS_LIMIT) -> List[Import]:
    stmt = (
        select(Import)
        .where(Import.job_id == job_id)
        .order_by(Import.created_at.desc(), Import.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def find_next_job(db: Session) -> Optional[Job]:
    """Oldest job that still has work: QUEUED or RUNNING."""
    stmt = (
        select(Job)
        .where(Job.status.in_(JobStatus.ACTIVE))
        .order_by(Job.created_at.asc(), Job.id.asc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def fetch_pending_imports(db: Session, job_id: str, limit: int) -> List[Import]:
    """
    一批 PENDING 记录（按 id 先进先出）。
    单 worker 部署不加行锁；重复处理由 record_import_outcome 的 PENDING 守卫兜住计数。
    """
    stmt = (
        select(Import)
        .where(Import.job_id == job_id, Import.status == ImportStatus.PENDING)
        .order_by(Import.id.asc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def get_pending_import(db: Session, import_id: int, *, shop_domain: str, job_id: Optional[str] = None) -> Optional[Import]:
    stmt = select(Import).where(
        Import.id == import_id,
        Import.shop_domain == shop_domain,
        Import.status == ImportStatus.PENDING,
    )
    if job_id is not None:
        stmt = stmt.where(Import.job_id == job_id)
    return db.scalars(stmt).first()


def count_pending(db: Session, job_id: str) -> int:
    stmt = select(func.count()).select_from(Import).where(
        Import.job_id == job_id, Import.status == ImportStatus.PENDING
    )
    return int(db.scalar(stmt) or 0)


# ---------- Mutations ----------
def create_job_with_imports(
    db: Session,
    shop_domain: str,
    products: Sequence[Product],
    options: Optional[Mapping[str, Any]] = None,
) -> Tuple[Job, List[Import]]:
    """Job(QUEUED, total=len(products)) + one PENDING import per product, in one transaction."""
    job = Job(
        shop_domain=shop_domain,
        status=JobStatus.QUEUED,
        total=len(products),
        processed=0,
        succeeded=0,
        failed=0,
        options=to_jsonable(dict(options or {})),
    )
    db.add(job)
    db.flush()

    imports = [
        Import(
            shop_domain=shop_domain,
            job_id=job.id,
            status=ImportStatus.PENDING,
            product_data=to_jsonable(p.to_dict()),
            title=(p.title or "")[:512] or None,
            sku=display_sku(p),
        )
        for p in products
    ]
    db.add_all(imports)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("job_repo.job_created job=%s shop=%s total=%s", job.id, shop_domain, job.total)
    return job, imports


def claim_job(db: Session, job_id: str) -> bool:
    """QUEUED → RUNNING; returns False when the job was not QUEUED (already running, cancelled, ...)."""
    res = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status == JobStatus.QUEUED)
        .values(status=JobStatus.RUNNING, updated_at=now_utc())
        .execution_options(**_NO_SYNC)
    )
    db.commit()
    return res.rowcount == 1


def _increment_counters(job_id: str, success: bool, *extra_conditions):
    values = {"processed": Job.processed + 1, "updated_at": now_utc()}
    if success:
        values["succeeded"] = Job.succeeded + 1
    else:
        values["failed"] = Job.failed + 1
    return (
        update(Job)
        .where(Job.id == job_id, *extra_conditions)
        .values(**values)
        .execution_options(**_NO_SYNC)
    )


def _outcome_values(outcome: ImportOutcome) -> Dict[str, Any]:
    values: Dict[str, Any] = {
        "status": ImportStatus.SUCCESS if outcome.success else ImportStatus.FAILED,
        "shopify_product_id": outcome.shopify_product_id if outcome.success else None,
        "action": outcome.action or (None if outcome.success else ImportAction.FAILED),
        "error": None if outcome.success else to_error_text(outcome.error or "Unknown error"),
        "updated_at": now_utc(),
    }
    if outcome.title:
        values["title"] = outcome.title[:512]
    if outcome.sku:
        values["sku"] = outcome.sku
    return values


def record_import_outcome(db: Session, import_id: int, job_id: Optional[str], outcome: ImportOutcome) -> bool:
    """
    PENDING → SUCCESS/FAILED 与 Job 计数器自增放在同一个事务里：
      1) 条件更新 Import（WHERE status = PENDING），没命中说明已被别人处理，直接返回 False
      2) Job.processed + 1，且 succeeded / failed 二选一 + 1（原子自增，不读再写）
    """
    try:
        res = db.execute(
            update(Import)
            .where(Import.id == import_id, Import.status == ImportStatus.PENDING)
            .values(**_outcome_values(outcome))
            .execution_options(**_NO_SYNC)
        )
        if res.rowcount != 1:
            db.rollback()
            logger.warning("job_repo.outcome_skipped import=%s job=%s reason=not_pending", import_id, job_id)
            return False

        if job_id is not None:
            db.execute(_increment_counters(job_id, outcome.success))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return True


def record_adhoc_outcome(
    db: Session,
    shop_domain: str,
    job_id: Optional[str],
    product_data: Mapping[str, Any],
    outcome: ImportOutcome,
    *,
    match_sku: Optional[str] = None,
) -> Tuple[Import, bool]:
    """
    单条同步落账：
      1) 挂了 Job 且队列里有同 SKU 的 PENDING import：结掉那一条（PENDING 守卫 + 计数自增），不另插记录
      2) 否则插一条终态 Import；计数只在 Job 仍 QUEUED/RUNNING 且 processed + PENDING 数 < total 时推进，
         队列里的每条 PENDING 都留着名额，worker 再怎么处理 processed 也不会超过 total
    返回 (import, counted)。
    """
    if job_id is not None and match_sku:
        settled = _settle_pending_by_sku(db, job_id, match_sku, outcome)
        if settled is not None:
            return settled, True

    values = _outcome_values(outcome)
    row = Import(
        shop_domain=shop_domain,
        job_id=job_id,
        product_data=to_jsonable(dict(product_data)),
        title=values.pop("title", None),
        sku=values.pop("sku", None) or "N/A",
        **{k: v for k, v in values.items() if k != "updated_at"},
    )
    counted = False
    try:
        db.add(row)
        db.flush()
        if job_id is not None:
            res = db.execute(
                _increment_counters(
                    job_id,
                    outcome.success,
                    Job.status.in_(JobStatus.ACTIVE),
                    Job.processed + _pending_count(job_id) < Job.total,
                )
            )
            counted = res.rowcount == 1
            if counted:
                db.execute(_complete_when_counted(job_id))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return row, counted


def _pending_count(job_id: str):
    return (
        select(func.count())
        .select_from(Import)
        .where(Import.job_id == job_id, Import.status == ImportStatus.PENDING)
        .scalar_subquery()
    )


def _settle_pending_by_sku(db: Session, job_id: str, sku: str, outcome: ImportOutcome) -> Optional[Import]:
    if get_job_status(db, job_id) not in JobStatus.ACTIVE:
        return None
    import_id = db.scalar(
        select(Import.id)
        .where(Import.job_id == job_id, Import.status == ImportStatus.PENDING, Import.sku == sku)
        .order_by(Import.id.asc())
        .limit(1)
    )
    if import_id is None or not record_import_outcome(db, import_id, job_id, outcome):
        return None
    complete_job_if_drained(db, job_id)
    return db.get(Import, import_id, populate_existing=True)


def _complete_when_counted(job_id: str):
    now = now_utc()
    return (
        update(Job)
        .where(Job.id == job_id, Job.status.in_(JobStatus.ACTIVE), Job.processed >= Job.total)
        .values(status=JobStatus.COMPLETED, finished_at=now, updated_at=now)
        .execution_options(**_NO_SYNC)
    )


def complete_job_if_drained(db: Session, job_id: str) -> bool:
    """RUNNING/QUEUED → COMPLETED when no PENDING import is left (checked inside the UPDATE)."""
    now = now_utc()
    pending = exists().where(Import.job_id == job_id, Import.status == ImportStatus.PENDING)
    res = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status.in_(JobStatus.ACTIVE), ~pending)
        .values(status=JobStatus.COMPLETED, finished_at=now, updated_at=now)
        .execution_options(**_NO_SYNC)
    )
    db.commit()
    return res.rowcount == 1


def fail_job(db: Session, job_id: str, error: str) -> bool:
    """Job-level failure (e.g. missing credential); imports keep their state."""
    now = now_utc()
    res = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status.in_(JobStatus.ACTIVE))
        .values(status=JobStatus.FAILED, error=to_error_text(error), finished_at=now, updated_at=now)
        .execution_options(**_NO_SYNC)
    )
    db.commit()
    return res.rowcount == 1


def cancel_job(db: Session, job_id: str, shop_domain: str) -> Job:
    """
    QUEUED/RUNNING → CANCELLED（compare-and-swap）。
    其它状态抛 InvalidTransitionError，不做任何修改；PENDING 的 imports 原样保留。
    """
    now = now_utc()
    res = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.shop_domain == shop_domain, Job.status.in_(JobStatus.ACTIVE))
        .values(status=JobStatus.CANCELLED, finished_at=now, updated_at=now)
        .execution_options(**_NO_SYNC)
    )
    if res.rowcount != 1:
        db.rollback()
        job = get_job_for_shop(db, job_id, shop_domain)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found.")
        raise InvalidTransitionError(job.status)

    db.commit()
    job = get_job(db, job_id)
    assert job is not None
    logger.info("job_repo.job_cancelled job=%s shop=%s", job_id, shop_domain)
    return job


def redact_shop(db: Session, shop_domain: str) -> Dict[str, int]:
    """Delete every import, job and stored session of a shop in one transaction."""
    try:
        imports = db.execute(
            delete(Import).where(Import.shop_domain == shop_domain).execution_options(**_NO_SYNC)
        ).rowcount
        jobs = db.execute(
            delete(Job).where(Job.shop_domain == shop_domain).execution_options(**_NO_SYNC)
        ).rowcount
        sessions = db.execute(
            delete(ShopSession).where(ShopSession.shop_domain == shop_domain).execution_options(**_NO_SYNC)
        ).rowcount
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("job_repo.shop_redacted shop=%s imports=%s jobs=%s sessions=%s", shop_domain, imports, jobs, sessions)
    return {"imports": imports, "jobs": jobs, "sessions": sessions}
