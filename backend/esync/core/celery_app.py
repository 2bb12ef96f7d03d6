# Celery 实例 + 轮询 Tick

from celery import Celery
from kombu import Exchange, Queue
from esync.core.config import settings
from esync.core.logging import configure_logging

configure_logging()


'''
初始化 Celery 应用/实例
   - Beat: 1 台，按 WORKER_POLL_INTERVAL_SEC 投递 tick
   - Worker: 1 台，concurrency=1（导入队列默认单 worker 消费）
'''
celery_app = Celery(
    "esync",
    broker=settings.CELERY_BROKER_URL,          # 队列位置 (Redis)
    backend=settings.CELERY_RESULT_BACKEND,     # 结果存储 (Redis)
    include=[
        "esync.orchestration.import_worker",    # 导入队列轮询
    ],
)


'''
  通用 Celery 配置
'''
celery_app.conf.update(
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_track_started=True,
    broker_connection_retry_on_startup=True,
    # === 容错 ===
    worker_prefetch_multiplier=1,    # 一个 worker 一次只取一个任务
    task_acks_late=True,             # 任务执行完再确认；记录级幂等由 PENDING 守卫保证
    broker_heartbeat=30,
    broker_pool_limit=10,
)


'''
队列拆分：
   - import_io: Shopify 写入（慢 I/O），单独 worker 并发=1
   - default: 其它
'''
celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),
    Queue("import_io", Exchange("import_io"), routing_key="import_io"),
)

celery_app.conf.task_routes = {
    "esync.orchestration.import_worker.tick": {"queue": "import_io"},
}


# 默认的静态调度：没有阻塞原语，用 beat 周期性 tick 来轮询 Job 表
celery_app.conf.beat_schedule = {
    "import-worker-tick": {
        "task": "esync.orchestration.import_worker.tick",
        "schedule": settings.WORKER_POLL_INTERVAL_SEC,  # 秒
        "options": {"expires": settings.WORKER_POLL_INTERVAL_SEC * 2},
    },
}
