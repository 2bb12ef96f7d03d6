"""
导入编排（API 与 worker 共用的业务入口）：
   - create_sync_job：原始行 → 规范 Product → Job + PENDING imports（一个事务）
   - create_job_from_ebay：按卖家/类目拉取 eBay 商品 → 同上
   - sync_single_item：同步单条 upsert，计数契约与 worker 一致
   - process_import_now：立即处理某个 PENDING import（“马上处理”按钮）
   - cancel_job / get_job_status
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from esync.core.errors import ImportNotFoundError, InvalidRowsError, InvalidTransitionError, JobNotFoundError
from esync.db.model.job import Import, ImportAction, Job, JobStatus
from esync.integrations.ebay import EbayBrowseAPI
from esync.integrations.shopify import ShopCredential
from esync.repository import job_repo, session_repo
from esync.repository.job_repo import ImportOutcome
from esync.services.catalog import Product, normalize_rows, product_from_ebay_item
from esync.services.reconciliation import ProductUpserter, UpsertOptions, UpsertResult, build_upserter
from esync.services.reconciliation.payload import resolve_sku

logger = logging.getLogger(__name__)

UpserterFactory = Callable[[ShopCredential], ProductUpserter]


@dataclass
class JobStatusView:
    job: Job
    imports: List[Import]
    pending: int = 0

    def to_dict(self) -> Dict[str, Any]:
        job = self.job
        return {
            "id": job.id,
            "shopDomain": job.shop_domain,
            "status": job.status,
            "total": job.total,
            "processed": job.processed,
            "succeeded": job.succeeded,
            "failed": job.failed,
            "error": job.error,
            "options": job.options or {},
            "createdAt": job.created_at,
            "finishedAt": job.finished_at,
            "pending": self.pending,
            "imports": [import_to_dict(i) for i in self.imports],
        }


def import_to_dict(row: Import) -> Dict[str, Any]:
    return {
        "id": row.id,
        "jobId": row.job_id,
        "status": row.status,
        "title": row.title,
        "sku": row.sku,
        "action": row.action,
        "shopifyProductId": row.shopify_product_id,
        "error": row.error,
        "createdAt": row.created_at,
    }


def outcome_from_result(result: UpsertResult, product: Optional[Product] = None) -> ImportOutcome:
    """UpsertResult → 账本里的终态记录；成功时 title/sku 取远端返回值。"""
    if result.success:
        data = result.data or {}
        variants = data.get("variants") or []
        remote_sku = variants[0].get("sku") if variants and isinstance(variants[0], dict) else None
        return ImportOutcome(
            success=True,
            shopify_product_id=result.product_id,
            action=result.action,
            title=data.get("title") or (product.title if product else None),
            sku=remote_sku or result.sku,
        )
    return ImportOutcome(
        success=False,
        action=ImportAction.FAILED,
        error=result.error or "Failed to upsert product.",
        sku=result.sku,
    )


def coerce_product(item: Mapping[str, Any]) -> Product:
    """Accept either a Browse API item (camelCase, legacyItemId/itemId) or a stored canonical product dict."""
    if "legacyItemId" in item or "itemId" in item or "itemWebUrl" in item:
        return product_from_ebay_item(item)
    return Product.from_dict(dict(item))


def _require_sync_keys(products: Sequence[Product], options: Optional[Mapping[str, Any]]) -> None:
    """按 Job 的 skuSource 逐个解析同步键；缺键的商品整批拒绝（不建 Job）。"""
    sku_source = UpsertOptions.from_mapping(options).sku_source
    missing = [p.handle or p.title or "?" for p in products if not resolve_sku(p, sku_source)]
    if missing:
        raise InvalidRowsError(f"Missing SKU for: {', '.join(missing[:10])}" + (" ..." if len(missing) > 10 else ""))


# ---------------- 创建 ----------------
def create_sync_job(
    db: Session,
    shop_domain: str,
    rows: Sequence[Mapping[str, Any]],
    options: Optional[Mapping[str, Any]] = None,
    count: Optional[int] = None,
) -> Tuple[Job, List[Import]]:
    """
    1) 校验：空 / 非列表 → InvalidRowsError（不写库）
    2) 行规范化（按 handle 分组）
    3) 按 skuSource 解析同步键，任一商品缺键 → InvalidRowsError（不写库）
    4) 一个事务写 Job + imports；total 以分组后的商品数为准
    """
    if not rows or not isinstance(rows, (list, tuple)):
        raise InvalidRowsError("No items provided for import.")

    products = normalize_rows(rows, options)
    if not products:
        raise InvalidRowsError("None of the provided rows has a handle; nothing to import.")
    _require_sync_keys(products, options)

    if count is not None and count != len(products):
        logger.info("import_service.count_mismatch shop=%s declared=%s grouped=%s", shop_domain, count, len(products))

    return job_repo.create_job_with_imports(db, shop_domain, products, options)


def create_job_from_ebay(
    db: Session,
    shop_domain: str,
    browse_api: EbayBrowseAPI,
    seller: str,
    categories: Sequence[str],
    options: Optional[Mapping[str, Any]] = None,
    quota: Optional[int] = None,
) -> Tuple[Job, List[Import]]:
    """Fetch the seller's listings, map them to canonical products and enqueue them as one job."""
    seller = (seller or "").strip()
    if not seller:
        raise InvalidRowsError("Missing eBay seller username.")
    if not categories:
        raise InvalidRowsError("Missing eBay categories; validate the seller first.")

    opts: Dict[str, Any] = dict(options or {})
    sort = opts.get("sortOrder") or None
    items = browse_api.search_seller_items(seller, list(categories), sort=sort, quota=quota)
    products = [product_from_ebay_item(item) for item in items]
    if not products:
        raise InvalidRowsError("No items found on eBay for the selected categories and seller.")
    _require_sync_keys(products, opts)

    # Job 自描述：记录当时的来源参数
    opts.update({"source": "ebay", "sellerUsername": seller, "categories": list(categories)})
    if quota:
        opts["quota"] = int(quota)
    logger.info("import_service.ebay_enqueue shop=%s seller=%s items=%s", shop_domain, seller, len(products))
    return job_repo.create_job_with_imports(db, shop_domain, products, opts)


# ---------------- 同步路径 ----------------
def _resolve_upserter(db: Session, shop_domain: str, upserter: Optional[ProductUpserter],
                      upserter_factory: Optional[UpserterFactory]) -> ProductUpserter:
    if upserter is not None:
        return upserter
    credential = session_repo.require_offline_credential(db, shop_domain)
    return (upserter_factory or build_upserter)(credential)


def sync_single_item(
    db: Session,
    shop_domain: str,
    item: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
    *,
    job_id: Optional[str] = None,
    upserter: Optional[ProductUpserter] = None,
    upserter_factory: Optional[UpserterFactory] = None,
) -> Tuple[UpsertResult, Import]:
    """
    同步单条：
      1) 凭证缺失 → MissingCredentialError（不写任何记录）
      2) upsert（失败不抛，结构化返回）
      3) 落账：带 job_id 且队列里有同 SKU 的 PENDING import 时结掉那一条，
         否则写一条终态 Import，Job 还有余量才计数（见 job_repo.record_adhoc_outcome）
    """
    if job_id is not None and job_repo.get_job_for_shop(db, job_id, shop_domain) is None:
        raise JobNotFoundError(f"Job {job_id} not found.")

    engine = _resolve_upserter(db, shop_domain, upserter, upserter_factory)
    product = coerce_product(item)
    result = engine.upsert(product, UpsertOptions.from_mapping(options))

    outcome = outcome_from_result(result, product)
    if not outcome.success:
        outcome.title = product.title
        outcome.sku = product.legacy_item_id or product.epid or product.first_variant_sku or result.sku

    row, counted = job_repo.record_adhoc_outcome(
        db, shop_domain, job_id, product.to_dict(), outcome, match_sku=job_repo.display_sku(product),
    )
    if job_id is not None and not counted:
        logger.warning("import_service.single_not_counted shop=%s job=%s", shop_domain, job_id)
    return result, row


def process_import_now(
    db: Session,
    shop_domain: str,
    import_id: int,
    *,
    job_id: Optional[str] = None,
    upserter: Optional[ProductUpserter] = None,
    upserter_factory: Optional[UpserterFactory] = None,
) -> Tuple[UpsertResult, bool]:
    """
    立即处理一个 PENDING import（与 worker 共用 record_import_outcome）。
    返回 (result, recorded)；recorded=False 表示 worker 抢先写了终态，本次结果不计数。
    """
    row = job_repo.get_pending_import(db, import_id, shop_domain=shop_domain, job_id=job_id)
    if row is None:
        raise ImportNotFoundError(f"Import {import_id} not found or already processed.")

    job = job_repo.get_job(db, row.job_id) if row.job_id else None
    # 已取消 / 已结束的 Job 不再推进计数
    if job is not None and job.status not in JobStatus.ACTIVE:
        raise InvalidTransitionError(job.status, f"Cannot process imports of job with status '{job.status}'.")

    engine = _resolve_upserter(db, shop_domain, upserter, upserter_factory)
    product = Product.from_dict(row.product_data or {})
    result = engine.upsert(product, UpsertOptions.from_mapping(job.options if job else None))

    recorded = job_repo.record_import_outcome(db, row.id, row.job_id, outcome_from_result(result, product))
    if recorded and row.job_id:
        job_repo.complete_job_if_drained(db, row.job_id)
    return result, recorded


# ---------------- 查询 / 取消 ----------------
def get_job_status(db: Session, shop_domain: str, job_id: str) -> JobStatusView:
    job = job_repo.get_job_for_shop(db, job_id, shop_domain)
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found.")
    return JobStatusView(
        job=job,
        imports=job_repo.list_recent_imports(db, job_id),
        pending=job_repo.count_pending(db, job_id),
    )


def cancel_job(db: Session, shop_domain: str, job_id: str) -> JobStatusView:
    job = job_repo.cancel_job(db, job_id, shop_domain)
    return JobStatusView(
        job=job,
        imports=job_repo.list_recent_imports(db, job_id),
        pending=job_repo.count_pending(db, job_id),
    )


__all__ = [
    "JobStatusView", "import_to_dict", "outcome_from_result", "coerce_product",
    "create_sync_job", "create_job_from_ebay", "sync_single_item", "process_import_now",
    "get_job_status", "cancel_job",
]
