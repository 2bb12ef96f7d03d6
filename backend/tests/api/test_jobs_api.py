"""Shop-scoped routes: /jobs, /imports/single, /ebay/*, /health."""

import pytest

from esync.api.v1.deps import get_browse_api
from esync.integrations.ebay import EbayServerError
from esync.integrations.ebay.browse import PreviewResult, SellerTotals
from esync.repository import session_repo

from conftest import SHOP


HEADERS = {"X-Shop-Domain": SHOP}

ROWS = [
    {"Handle": "shoe", "Title": "Shoe", "Variant SKU": "S1", "Option1 Value": "Red", "Variant Price": "10"},
    {"Handle": "shoe", "Variant SKU": "S1", "Option1 Value": "Red"},
    {"Handle": "shoe", "Variant SKU": "S2", "Option1 Value": "Blue", "Variant Price": "10"},
    {"Handle": "hat", "Title": "Hat", "Variant SKU": "H1", "Variant Price": "5"},
]


@pytest.fixture()
def installed(db):
    session_repo.upsert_offline_session(db, SHOP, "shpat_test")


def _create_job(api_client, rows=ROWS):
    resp = api_client.post("/jobs", json={"count": len(rows), "options": {"defaultQuantity": 1}, "items": rows}, headers=HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


class StubBrowse:
    def __init__(self, totals=None, preview=None, items=None, error=None):
        self.totals = totals or SellerTotals()
        self._preview = preview
        self.items = items or []
        self.error = error

    def validate_seller(self, seller, categories=None):
        if self.error:
            raise self.error
        return self.totals

    def preview(self, seller, categories):
        return self._preview

    def search_seller_items(self, seller, categories, *, sort=None, quota=None, page_size=None):
        return self.items

    def get_item(self, legacy_item_id):
        return {"legacyItemId": legacy_item_id, "title": f"Item {legacy_item_id}"}


def _use_browse(api_client, stub):
    api_client.app.dependency_overrides[get_browse_api] = lambda: stub


# ---------------- 店铺头 ----------------
def test_missing_shop_header_is_unauthorized(api_client):
    assert api_client.post("/jobs", json={"items": ROWS}).status_code == 401


def test_invalid_shop_domain_is_rejected(api_client):
    resp = api_client.post("/jobs", json={"items": ROWS}, headers={"X-Shop-Domain": "evil.example.com"})
    assert resp.status_code == 400


# ---------------- /jobs ----------------
# 方法 1：建 Job，返回分组后的商品
def test_create_job(api_client):
    body = _create_job(api_client)

    assert body["success"] is True
    assert body["count"] == 2
    assert body["job"]["status"] == "QUEUED"
    assert body["job"]["total"] == 2
    assert body["job"]["pending"] == 2
    shoe = body["imports"][0]["productData"]
    assert [v["option1"] for v in shoe["variants"]] == ["Red", "Blue"]


def test_create_job_without_items(api_client):
    resp = api_client.post("/jobs", json={"items": []}, headers=HEADERS)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "No items provided for import."


def test_create_job_rejects_rows_without_sku(api_client):
    rows = [{"Handle": "scarf", "Title": "Scarf", "Option1 Value": "Red", "Variant Price": "3"}]
    resp = api_client.post("/jobs", json={"items": rows}, headers=HEADERS)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Missing SKU for: scarf"


def test_get_job_progress(api_client):
    job_id = _create_job(api_client)["job"]["id"]

    resp = api_client.get(f"/jobs/{job_id}", headers=HEADERS)
    assert resp.status_code == 200
    body = resp.json()
    assert (body["processed"], body["succeeded"], body["failed"]) == (0, 0, 0)
    assert {i["status"] for i in body["imports"]} == {"PENDING"}

    other = api_client.get(f"/jobs/{job_id}", headers={"X-Shop-Domain": "other.myshopify.com"})
    assert other.status_code == 404
    assert other.json()["detail"] == "Job not found."


# 方法 2：取消只允许一次
def test_cancel_job(api_client):
    job_id = _create_job(api_client)["job"]["id"]

    resp = api_client.delete(f"/jobs/{job_id}", headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["status"] == "CANCELLED"
    assert resp.json()["pending"] == 2

    again = api_client.delete(f"/jobs/{job_id}", headers=HEADERS)
    assert again.status_code == 400
    assert again.json()["detail"] == "Cannot cancel job with status 'CANCELLED'."

    assert api_client.delete("/jobs/does-not-exist", headers=HEADERS).status_code == 404


# 方法 3：立即处理某条 import
def test_process_import_requires_credential(api_client):
    created = _create_job(api_client)
    job_id, import_id = created["job"]["id"], created["imports"][0]["id"]

    resp = api_client.post(f"/jobs/{job_id}/imports/{import_id}/process", headers=HEADERS)
    assert resp.status_code == 401
    assert resp.json()["detail"] == f"Missing session for shop {SHOP}"


def test_process_import(api_client, installed, fake_client):
    created = _create_job(api_client)
    job_id = created["job"]["id"]
    ids = [i["id"] for i in created["imports"]]

    for import_id in ids:
        resp = api_client.post(f"/jobs/{job_id}/imports/{import_id}/process", headers=HEADERS)
        assert resp.status_code == 200, resp.text
        assert resp.json()["success"] is True
        assert resp.json()["recorded"] is True

    body = api_client.get(f"/jobs/{job_id}", headers=HEADERS).json()
    assert body["status"] == "COMPLETED"
    assert (body["processed"], body["succeeded"], body["pending"]) == (2, 2, 0)
    assert len(fake_client.products) == 2

    again = api_client.post(f"/jobs/{job_id}/imports/{ids[0]}/process", headers=HEADERS)
    assert again.status_code == 404


# ---------------- /imports/single ----------------
def test_single_import_success(api_client, installed):
    resp = api_client.post("/imports/single", json={"item": {"legacyItemId": "42", "title": "Answer"}}, headers=HEADERS)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["status"] == "SUCCESS"
    assert body["sku"] == "42"


def test_single_import_failure_returns_500(api_client, installed):
    resp = api_client.post(
        "/imports/single",
        json={"item": {"itemId": "v1|1|0", "title": "No ids"}, "options": {"skuSource": "epin"}},
        headers=HEADERS,
    )
    assert resp.status_code == 500
    assert resp.json()["success"] is False
    assert resp.json()["error"]


def test_single_import_by_item_id_fetches_from_ebay(api_client, installed):
    _use_browse(api_client, StubBrowse())
    resp = api_client.post("/imports/single", json={"itemId": "777"}, headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["title"] == "Item 777"


def test_single_import_without_credential(api_client):
    resp = api_client.post("/imports/single", json={"item": {"legacyItemId": "1"}}, headers=HEADERS)
    assert resp.status_code == 401


def test_single_import_requires_item(api_client):
    assert api_client.post("/imports/single", json={}, headers=HEADERS).status_code == 400


# ---------------- /ebay ----------------
def test_validate_seller(api_client):
    _use_browse(api_client, StubBrowse(totals=SellerTotals(["267"], 12, {"legacyItemId": "1"})))
    resp = api_client.post("/ebay/validate", json={"ebaySellerUsername": "bob"}, headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json()["totalFound"] == 12
    assert resp.json()["categoryIds"] == ["267"]


def test_validate_unknown_seller(api_client):
    _use_browse(api_client, StubBrowse())
    resp = api_client.post("/ebay/validate", json={"ebaySellerUsername": "nobody"}, headers=HEADERS)
    assert resp.status_code == 400


def test_validate_upstream_error(api_client):
    _use_browse(api_client, StubBrowse(error=EbayServerError("503 after retries")))
    resp = api_client.post("/ebay/validate", json={"ebaySellerUsername": "bob"}, headers=HEADERS)
    assert resp.status_code == 502


def test_preview(api_client):
    _use_browse(api_client, StubBrowse(preview=PreviewResult(total_items=3, sample_item={"title": "x"})))
    resp = api_client.post("/ebay/preview", json={"ebaySellerUsername": "bob", "categories": ["267"]}, headers=HEADERS)
    assert resp.json() == {"totalItems": 3, "sampleItem": {"title": "x"}}

    _use_browse(api_client, StubBrowse())
    resp = api_client.post("/ebay/preview", json={"ebaySellerUsername": "bob", "categories": ["267"]}, headers=HEADERS)
    assert resp.status_code == 404


def test_enqueue_from_ebay(api_client):
    _use_browse(api_client, StubBrowse(items=[{"legacyItemId": "1", "title": "One"}, {"legacyItemId": "2", "title": "Two"}]))
    resp = api_client.post(
        "/ebay/enqueue",
        json={"ebaySellerUsername": "bob", "categories": ["267"], "options": {"defaultQuantity": 1}},
        headers=HEADERS,
    )
    assert resp.status_code == 201, resp.text
    job = resp.json()["job"]
    assert job["total"] == 2
    assert job["options"]["source"] == "ebay"


def test_health(api_client):
    assert api_client.get("/health").json() == {"status": "ok"}
