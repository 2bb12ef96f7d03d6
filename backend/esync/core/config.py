# 环境变量和配置
# pydantic‑settings 读取 .env = core/config.py

from typing import Optional
from pydantic import SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 本机直接跑 uvicorn / worker 时（不走 Docker），才会用到 model_config.env_file=".env"：
# 此时它会读取 backend/.env

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # ========= project config =========
    PROJECT_NAME: str = "eBay Catalog Sync"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"


    # ========= Database =========
    # 容器内默认连 docker 网络里的 "db" 服务
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://esync_user:esync_pass@db:5432/esync_dev",
        alias="DATABASE_URL",
    )
    REDIS_URL: Optional[str] = Field(None, alias="REDIS_URL")


    # ========= celery config =========
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_TIMEZONE: str = "UTC"


    # ========= Worker（导入队列轮询）=========
    WORKER_BATCH_SIZE: int = Field(5, ge=1, le=100, alias="WORKER_BATCH_SIZE")              # 每轮最多处理的 PENDING 记录数
    WORKER_POLL_INTERVAL_SEC: int = Field(5, ge=1, alias="WORKER_POLL_INTERVAL_SEC")        # 没有可处理的 Job 时的休眠
    WORKER_RECORD_DELAY_MS: int = Field(250, ge=0, alias="WORKER_RECORD_DELAY_MS")          # 记录之间的间隔，照顾 Shopify 限流
    WORKER_TICK_MAX_BATCHES: int = Field(10, ge=1, alias="WORKER_TICK_MAX_BATCHES")         # celery tick 单次最多跑几批


    # ========= SKU 锁（多 worker 时避免 check-then-write 竞争）=========
    SKU_LOCK_ENABLED: bool = Field(False, alias="SKU_LOCK_ENABLED")
    SKU_LOCK_TTL_MS: int = Field(30_000, ge=1000, alias="SKU_LOCK_TTL_MS")
    SKU_LOCK_KEY_PREFIX: str = Field("esync:sku-lock", alias="SKU_LOCK_KEY_PREFIX")


    # ========= Shopify API Config =========
    SHOPIFY_API_VERSION: str = Field("2025-01", alias="SHOPIFY_API_VERSION")
    SHOPIFY_WEBHOOK_SECRET: Optional[SecretStr] = Field(None, alias="SHOPIFY_WEBHOOK_SECRET")   # = App secret，用于 webhook HMAC

    # 网络/HTTP 层 配置 测试时调参
    SHOPIFY_HTTP_TIMEOUT: int = Field(30, alias="SHOPIFY_HTTP_TIMEOUT")
    SHOPIFY_HTTP_RETRIES: int = Field(3, alias="SHOPIFY_HTTP_RETRIES")
    SHOPIFY_HTTP_BACKOFF_MS: int = Field(200, alias="SHOPIFY_HTTP_BACKOFF_MS")


    # ========= Reconciliation 默认值 =========
    DEFAULT_VENDOR: str = Field("Default Vendor", alias="DEFAULT_VENDOR")
    BULK_UPSERT_DELAY_MS: int = Field(500, ge=0, alias="BULK_UPSERT_DELAY_MS")


    # ========= eBay Base Config =========
    EBAY_API_ID: Optional[str] = Field(None, alias="EBAY_API_ID")
    EBAY_API_SECRET: Optional[SecretStr] = Field(None, alias="EBAY_API_SECRET")
    EBAY_BASE_URL: str = Field("https://api.ebay.com", alias="EBAY_BASE_URL")
    EBAY_OAUTH_URL: str = Field("https://api.ebay.com/identity/v1/oauth2/token", alias="EBAY_OAUTH_URL")
    EBAY_OAUTH_SCOPE: str = Field("https://api.ebay.com/oauth/api_scope", alias="EBAY_OAUTH_SCOPE")
    EBAY_CONNECT_TIMEOUT: int = Field(10, ge=1, alias="EBAY_CONNECT_TIMEOUT")
    EBAY_READ_TIMEOUT: int = Field(30, ge=1, alias="EBAY_READ_TIMEOUT")
    EBAY_RATE_LIMIT_PER_MIN: int = Field(240, ge=1, le=5000, alias="EBAY_RATE_LIMIT_PER_MIN")
    EBAY_TOKEN_TTL_SEC: int = Field(2 * 60 * 60, ge=60, alias="EBAY_TOKEN_TTL_SEC")           # 响应没有 expires_in 时的兜底 TTL

    # Browse API 分页
    EBAY_PAGE_SIZE: int = Field(200, ge=1, le=200, alias="EBAY_PAGE_SIZE")                    # Browse API 单页上限 200
    EBAY_DEFAULT_QUOTA: int = Field(250, ge=1, alias="EBAY_DEFAULT_QUOTA")
    EBAY_PAGE_DELAY_MS: int = Field(250, ge=0, alias="EBAY_PAGE_DELAY_MS")
    EBAY_DEFAULT_SORT: str = Field("-creationDate", alias="EBAY_DEFAULT_SORT")

    # ========= eBay 全局限流配置 =========
    EBAY_GLOBAL_RL_ENABLED: bool = Field(False, alias="EBAY_GLOBAL_RL_ENABLED")
    EBAY_GLOBAL_RL_MAX_RPM: int = Field(240, alias="EBAY_GLOBAL_RL_MAX_RPM")     # 每分钟最大速率
    EBAY_GLOBAL_RL_BURST: int = Field(5, alias="EBAY_GLOBAL_RL_BURST")           # 桶容量
    EBAY_GLOBAL_RL_MAX_WAIT_MS: int = Field(5000, alias="EBAY_GLOBAL_RL_MAX_WAIT_MS")
    EBAY_GLOBAL_RL_KEY_PREFIX: str = Field("ebay:rl", alias="EBAY_GLOBAL_RL_KEY_PREFIX")


    # 限流 / 锁 用的 Redis 地址：没单独配就复用 broker
    @property
    def redis_for_locks(self) -> Optional[str]:
        return self.REDIS_URL or self.CELERY_BROKER_URL


settings = Settings()  # 只从环境读取（含 .env）
