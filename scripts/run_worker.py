#!/usr/bin/env python3
from __future__ import annotations
import argparse, signal, threading

from esync.core.logging import configure_logging
from esync.orchestration.import_worker import ImportWorker


'''
常驻导入 worker（不走 Celery beat 时用）：
    - 轮询 Job 表，逐批处理 PENDING imports
    - SIGINT / SIGTERM：当前这条处理完后退出
    - 用法（PYTHONPATH 指向 backend/）：
    python scripts/run_worker.py --batch-size 5 --poll-interval 5
'''
def main():
    ap = argparse.ArgumentParser(description="Run the catalog import worker loop.")
    ap.add_argument("--batch-size", type=int, default=None, help="PENDING imports per batch (default: WORKER_BATCH_SIZE)")
    ap.add_argument("--poll-interval", type=float, default=None, help="Idle sleep in seconds (default: WORKER_POLL_INTERVAL_SEC)")
    ap.add_argument("--log-level", default=None)
    args = ap.parse_args()

    logger = configure_logging(args.log_level)
    stop = threading.Event()

    def _stop(signum, _frame):
        logger.info("run_worker.signal signum=%s; stopping after current record", signum)
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    ImportWorker(batch_size=args.batch_size, poll_interval_sec=args.poll_interval).run_forever(stop)


if __name__ == "__main__":
    main()
