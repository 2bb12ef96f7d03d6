"""Job / Import ledger: counters, exactly-once outcomes, cancellation, redaction."""

import pytest

from esync.core.errors import InvalidTransitionError, JobNotFoundError
from esync.db.model import Import, ImportStatus, Job, JobStatus, ShopSession
from esync.repository import job_repo, session_repo
from esync.repository.job_repo import ImportOutcome
from esync.services.catalog import Product, ProductVariant

from conftest import SHOP


def _products(n: int):
    return [
        Product(handle=f"h{i}", title=f"Item {i}", variants=[ProductVariant(sku=f"SKU-{i}", price="1")])
        for i in range(n)
    ]


@pytest.fixture()
def job_with_imports(db):
    return job_repo.create_job_with_imports(db, SHOP, _products(3), {"defaultQuantity": 2})


def _reload(session_factory, job_id):
    with session_factory() as s:
        return s.get(Job, job_id)


# 方法 1：建 Job + PENDING imports（同一事务）
def test_create_job_with_imports(db, job_with_imports):
    job, imports = job_with_imports

    assert job.status == JobStatus.QUEUED
    assert (job.total, job.processed, job.succeeded, job.failed) == (3, 0, 0, 0)
    assert job.options == {"defaultQuantity": 2}
    assert [i.status for i in imports] == [ImportStatus.PENDING] * 3
    assert [i.sku for i in imports] == ["SKU-0", "SKU-1", "SKU-2"]
    assert imports[0].product_data["handle"] == "h0"
    assert job_repo.count_pending(db, job.id) == 3


def test_claim_job_only_from_queued(db, job_with_imports):
    job, _ = job_with_imports
    assert job_repo.claim_job(db, job.id) is True
    assert job_repo.claim_job(db, job.id) is False
    assert job_repo.get_job_status(db, job.id) == JobStatus.RUNNING


# 方法 2：两成功一失败 → processed=3, succeeded=2, failed=1, COMPLETED
def test_counters_and_completion(db, session_factory, job_with_imports):
    job, imports = job_with_imports
    job_repo.claim_job(db, job.id)

    assert job_repo.record_import_outcome(db, imports[0].id, job.id, ImportOutcome(True, "101", "created"))
    assert job_repo.record_import_outcome(db, imports[1].id, job.id, ImportOutcome(True, "102", "updated"))
    assert not job_repo.complete_job_if_drained(db, job.id)
    assert job_repo.record_import_outcome(db, imports[2].id, job.id, ImportOutcome(False, error="HTTP 422: bad"))
    assert job_repo.complete_job_if_drained(db, job.id)

    fresh = _reload(session_factory, job.id)
    assert (fresh.processed, fresh.succeeded, fresh.failed) == (3, 2, 1)
    assert fresh.status == JobStatus.COMPLETED
    assert fresh.finished_at is not None

    with session_factory() as s:
        failed = s.get(Import, imports[2].id)
        assert failed.status == ImportStatus.FAILED
        assert failed.action == "failed"
        assert failed.error == "HTTP 422: bad"
        assert failed.shopify_product_id is None


def test_outcome_recorded_only_once(db, session_factory, job_with_imports):
    job, imports = job_with_imports
    assert job_repo.record_import_outcome(db, imports[0].id, job.id, ImportOutcome(True, "101", "created"))
    assert not job_repo.record_import_outcome(db, imports[0].id, job.id, ImportOutcome(False, error="late"))

    fresh = _reload(session_factory, job.id)
    assert (fresh.processed, fresh.succeeded, fresh.failed) == (1, 1, 0)
    with session_factory() as s:
        assert s.get(Import, imports[0].id).status == ImportStatus.SUCCESS


# 方法 3：取消（CAS）
def test_cancel_active_job_keeps_pending_imports(db, job_with_imports):
    job, _ = job_with_imports
    cancelled = job_repo.cancel_job(db, job.id, SHOP)

    assert cancelled.status == JobStatus.CANCELLED
    assert cancelled.finished_at is not None
    assert job_repo.count_pending(db, job.id) == 3
    assert job_repo.find_next_job(db) is None


def test_cancel_terminal_job_is_rejected(db, job_with_imports):
    job, imports = job_with_imports
    for row in imports:
        job_repo.record_import_outcome(db, row.id, job.id, ImportOutcome(True, "1", "created"))
    job_repo.complete_job_if_drained(db, job.id)

    with pytest.raises(InvalidTransitionError) as exc:
        job_repo.cancel_job(db, job.id, SHOP)
    assert str(exc.value) == "Cannot cancel job with status 'COMPLETED'."
    assert exc.value.current_status == JobStatus.COMPLETED


def test_cancel_other_shops_job_is_not_found(db, job_with_imports):
    job, _ = job_with_imports
    with pytest.raises(JobNotFoundError):
        job_repo.cancel_job(db, job.id, "other.myshopify.com")
    assert job_repo.get_job_status(db, job.id) == JobStatus.QUEUED


def test_fail_job_records_error(db, session_factory, job_with_imports):
    job, _ = job_with_imports
    assert job_repo.fail_job(db, job.id, "Missing session for shop x")
    assert not job_repo.fail_job(db, job.id, "again")

    fresh = _reload(session_factory, job.id)
    assert fresh.status == JobStatus.FAILED
    assert fresh.error == "Missing session for shop x"


# 方法 4：单条同步挂在 Job 上，计数不超过 total
def test_adhoc_outcome_counts_until_total(db, session_factory):
    job, _ = job_repo.create_job_with_imports(db, SHOP, _products(1))
    # 唯一的 PENDING 先被处理掉，再来两条单条同步
    pending = job_repo.fetch_pending_imports(db, job.id, 10)[0]
    job_repo.record_import_outcome(db, pending.id, job.id, ImportOutcome(True, "1", "created"))

    row, counted = job_repo.record_adhoc_outcome(
        db, SHOP, job.id, {"title": "extra"}, ImportOutcome(True, "9", "created", title="extra", sku="X-1"),
    )
    assert counted is False
    assert row.status == ImportStatus.SUCCESS
    assert row.sku == "X-1"

    fresh = _reload(session_factory, job.id)
    assert fresh.processed == fresh.total == 1


def test_adhoc_outcome_completes_job(db, session_factory):
    job = Job(shop_domain=SHOP, status=JobStatus.RUNNING, total=1, options={})
    db.add(job)
    db.commit()

    row, counted = job_repo.record_adhoc_outcome(db, SHOP, job.id, {}, ImportOutcome(False, error="boom"))
    assert counted is True
    assert row.status == ImportStatus.FAILED
    assert row.sku == "N/A"

    fresh = _reload(session_factory, job.id)
    assert (fresh.processed, fresh.failed, fresh.status) == (1, 1, JobStatus.COMPLETED)


def test_adhoc_outcome_without_job(db):
    row, counted = job_repo.record_adhoc_outcome(db, SHOP, None, {"title": "solo"}, ImportOutcome(True, "5", "created"))
    assert counted is False
    assert row.job_id is None
    assert row.shopify_product_id == "5"


# 方法 5：店铺数据清除
def test_redact_shop_deletes_everything_for_that_shop(db, session_factory, job_with_imports):
    other, _ = job_repo.create_job_with_imports(db, "other.myshopify.com", _products(1))
    session_repo.upsert_offline_session(db, SHOP, "shpat_test")

    deleted = job_repo.redact_shop(db, SHOP)

    assert deleted == {"imports": 3, "jobs": 1, "sessions": 1}
    with session_factory() as s:
        assert s.query(Job).count() == 1
        assert s.query(Import).count() == 1
        assert s.query(ShopSession).count() == 0
        assert s.get(Job, other.id) is not None


def test_list_recent_imports_and_pending_lookup(db, job_with_imports):
    job, imports = job_with_imports
    recent = job_repo.list_recent_imports(db, job.id, limit=2)
    assert len(recent) == 2

    assert job_repo.get_pending_import(db, imports[0].id, shop_domain=SHOP, job_id=job.id) is not None
    assert job_repo.get_pending_import(db, imports[0].id, shop_domain="other.myshopify.com") is None
    assert job_repo.get_pending_import(db, imports[0].id, shop_domain=SHOP, job_id="nope") is None


# 方法 6：单条同步遇上还在排队的 Job
def test_adhoc_outcome_leaves_room_for_pending_imports(db, session_factory, job_with_imports):
    job, imports = job_with_imports

    row, counted = job_repo.record_adhoc_outcome(
        db, SHOP, job.id, {"title": "extra"}, ImportOutcome(True, "9", "created", sku="X-1"), match_sku="X-1",
    )
    assert counted is False
    assert row.id not in {i.id for i in imports}
    assert _reload(session_factory, job.id).processed == 0
    assert job_repo.count_pending(db, job.id) == 3


def test_adhoc_outcome_settles_pending_import_with_same_sku(db, session_factory, job_with_imports):
    job, imports = job_with_imports

    row, counted = job_repo.record_adhoc_outcome(
        db, SHOP, job.id, {}, ImportOutcome(True, "77", "updated", sku="SKU-1"), match_sku="SKU-1",
    )
    assert counted is True
    assert row.id == imports[1].id
    assert (row.status, row.shopify_product_id) == (ImportStatus.SUCCESS, "77")

    fresh = _reload(session_factory, job.id)
    assert (fresh.processed, fresh.succeeded) == (1, 1)
    assert db.query(Import).filter(Import.job_id == job.id).count() == 3


def test_adhoc_outcome_does_not_settle_for_cancelled_job(db, session_factory, job_with_imports):
    job, _ = job_with_imports
    job_repo.cancel_job(db, job.id, SHOP)

    row, counted = job_repo.record_adhoc_outcome(
        db, SHOP, job.id, {}, ImportOutcome(True, "77", "updated", sku="SKU-1"), match_sku="SKU-1",
    )
    assert counted is False
    assert row.status == ImportStatus.SUCCESS
    assert job_repo.count_pending(db, job.id) == 3
    assert _reload(session_factory, job.id).processed == 0
