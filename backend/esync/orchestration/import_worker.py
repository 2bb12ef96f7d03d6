"""
导入队列 worker（轮询式，无阻塞原语）：

    每轮：
      1) 找最早的 QUEUED/RUNNING Job；QUEUED 则认领为 RUNNING
      2) 读店铺 offline 凭证；缺失 → 整单 FAILED（不动 imports）
      3) 取最多 batch_size 条 PENDING import，逐条串行处理：
           - 处理每条前重新读 Job 状态，发现 CANCELLED 立即停（剩余保持 PENDING）
           - upsert → record_import_outcome（PENDING 守卫 + 原子自增）
           - 条间 sleep record_delay_ms（对 Shopify 限流友好）
      4) 批次结束后没有 PENDING → COMPLETED
    没有可处理的 Job：sleep poll_interval_sec 再来。
    循环内未分类异常只记日志并退避，不终止进程。

两种运行方式：
  - scripts/run_worker.py：常驻进程 run_forever()
  - Celery beat → tick()：每次最多跑 WORKER_TICK_MAX_BATCHES 批
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from celery import shared_task
from sqlalchemy.orm import Session, sessionmaker

from esync.core.config import settings
from esync.db.model.job import JobStatus
from esync.db.session import SessionLocal, session_scope
from esync.integrations.shopify import ShopCredential
from esync.repository import job_repo, session_repo
from esync.repository.job_repo import ImportOutcome
from esync.services.catalog import Product
from esync.services.import_service import outcome_from_result
from esync.services.reconciliation import ProductUpserter, UpsertOptions, build_upserter
from esync.utils.backoff import calc_next_delay
from esync.utils.serialization import to_error_text

logger = logging.getLogger(__name__)


class ImportWorker:

    def __init__(
        self,
        session_factory: Optional[sessionmaker[Session]] = None,
        upserter_factory: Callable[[ShopCredential], ProductUpserter] = build_upserter,
        *,
        batch_size: Optional[int] = None,
        record_delay_ms: Optional[int] = None,
        poll_interval_sec: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session_factory = session_factory or SessionLocal
        self.upserter_factory = upserter_factory
        self.batch_size = max(1, int(batch_size or settings.WORKER_BATCH_SIZE))
        self.record_delay_ms = settings.WORKER_RECORD_DELAY_MS if record_delay_ms is None else record_delay_ms
        self.poll_interval_sec = settings.WORKER_POLL_INTERVAL_SEC if poll_interval_sec is None else poll_interval_sec
        self._sleep = sleep

    # ---------------- 单个 Job 的一批 ----------------
    def process_job(self, job_id: str) -> int:
        """Process one batch of the job; returns how many imports got a terminal outcome."""
        with session_scope(self.session_factory) as db:
            job = job_repo.get_job(db, job_id)
            if job is None or job.status not in JobStatus.ACTIVE:
                return 0

            # 1) 认领（幂等：已经 RUNNING 就跳过）
            if job.status == JobStatus.QUEUED and job_repo.claim_job(db, job_id):
                logger.info("import_worker.job_claimed job=%s shop=%s total=%s", job_id, job.shop_domain, job.total)

            # 2) 凭证：缺失时整单失败，批内任何一条都不可能成功
            credential = session_repo.load_offline_credential(db, job.shop_domain)
            if credential is None:
                job_repo.fail_job(db, job_id, f"Missing session for shop {job.shop_domain}")
                logger.error("import_worker.job_failed job=%s shop=%s reason=missing_credential", job_id, job.shop_domain)
                return 0

            try:
                upserter = self.upserter_factory(credential)
            except Exception as e:
                # 客户端都建不起来：和缺凭证一样整单失败，队列继续往后走
                job_repo.fail_job(db, job_id, f"Cannot build client for shop {job.shop_domain}: {to_error_text(e, limit=300)}")
                logger.exception("import_worker.job_failed job=%s shop=%s reason=client_error", job_id, job.shop_domain)
                return 0
            options = UpsertOptions.from_mapping(job.options)

            # 3) 批次
            pending = job_repo.fetch_pending_imports(db, job_id, self.batch_size)
            done = 0
            for idx, row in enumerate(pending):
                status = job_repo.get_job_status(db, job_id)
                if status != JobStatus.RUNNING:
                    logger.info("import_worker.job_stopped job=%s status=%s remaining=%s",
                                job_id, status, len(pending) - idx)
                    return done

                if idx and self.record_delay_ms > 0:
                    self._sleep(self.record_delay_ms / 1000.0)

                try:
                    product = Product.from_dict(row.product_data or {})
                    result = upserter.upsert(product, options)
                except Exception as e:
                    # 单条的意外异常只记在这一条上，不拖住整个队列
                    logger.exception("import_worker.record_error job=%s import=%s", job_id, row.id)
                    outcome = ImportOutcome(success=False, error=to_error_text(e), title=row.title, sku=row.sku)
                    if job_repo.record_import_outcome(db, row.id, job_id, outcome):
                        done += 1
                    continue

                if job_repo.record_import_outcome(db, row.id, job_id, outcome_from_result(result, product)):
                    done += 1
                if result.success:
                    logger.info("import_worker.record_ok job=%s import=%s sku=%s action=%s",
                                job_id, row.id, result.sku, result.action)
                else:
                    logger.warning("import_worker.record_failed job=%s import=%s sku=%s err=%s",
                                   job_id, row.id, result.sku, result.error)

            # 4) 全部处理完 → COMPLETED
            if job_repo.complete_job_if_drained(db, job_id):
                job = job_repo.get_job(db, job_id)
                logger.info("import_worker.job_completed job=%s processed=%s succeeded=%s failed=%s",
                            job_id, job.processed, job.succeeded, job.failed)
            return done

    # ---------------- 轮询 ----------------
    def run_once(self) -> bool:
        """One iteration; returns False when there was no claimable job."""
        with session_scope(self.session_factory) as db:
            job = job_repo.find_next_job(db)
            job_id = job.id if job is not None else None
        if job_id is None:
            return False
        self.process_job(job_id)
        return True

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        stop_event = stop_event or threading.Event()
        failures = 0
        logger.info("import_worker.started batch_size=%s poll_interval_sec=%s", self.batch_size, self.poll_interval_sec)

        while not stop_event.is_set():
            try:
                had_work = self.run_once()
                failures = 0
            except Exception as e:
                # 未分类异常：记日志 + 退避，进程不退出
                failures += 1
                delay = calc_next_delay(failures, base_seconds=self.poll_interval_sec or 1)
                logger.exception("import_worker.loop_error failures=%s retry_in=%.1fs err=%s",
                                 failures, delay, to_error_text(e, limit=300))
                stop_event.wait(delay)
                continue

            if not had_work:
                stop_event.wait(self.poll_interval_sec)

        logger.info("import_worker.stopped")


# ---------------- Celery 入口 ----------------
@shared_task(name="esync.orchestration.import_worker.tick")
def tick():
    """Beat-driven iteration: up to WORKER_TICK_MAX_BATCHES batches, then yield back to the broker."""
    worker = ImportWorker()
    batches = 0
    for _ in range(settings.WORKER_TICK_MAX_BATCHES):
        if not worker.run_once():
            break
        batches += 1
    return {"status": "ok" if batches else "idle", "batches": batches}
