"""Shopify compliance / uninstall webhooks with HMAC verification."""

import base64
import hashlib
import hmac
import json

import pytest
from pydantic import SecretStr

from esync.core.config import settings
from esync.db.model import Job, ShopSession
from esync.repository import job_repo, session_repo
from esync.services.catalog import Product

from conftest import SHOP

SECRET = "whsec_test"


@pytest.fixture(autouse=True)
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "SHOPIFY_WEBHOOK_SECRET", SecretStr(SECRET))


def _post(client, topic, payload, *, secret=SECRET, shop=SHOP):
    raw = json.dumps(payload).encode("utf-8")
    sig = base64.b64encode(hmac.new(secret.encode(), raw, hashlib.sha256).digest()).decode()
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Hmac-Sha256": sig,
        "X-Shopify-Topic": topic,
        "X-Shopify-Shop-Domain": shop,
    }
    return client.post(f"/webhooks/shopify/{topic}", content=raw, headers=headers)


def test_missing_or_bad_hmac_is_rejected(api_client):
    resp = api_client.post("/webhooks/shopify/shop/redact", content=b"{}", headers={"X-Shopify-Topic": "shop/redact"})
    assert resp.status_code == 401
    assert _post(api_client, "shop/redact", {}, secret="wrong").status_code == 401


def test_unconfigured_secret_rejects_everything(api_client, monkeypatch):
    monkeypatch.setattr(settings, "SHOPIFY_WEBHOOK_SECRET", None)
    assert _post(api_client, "customers/redact", {}).status_code == 401


def test_customer_topics_are_acknowledged(api_client):
    for topic in ("customers/data_request", "customers/redact"):
        resp = _post(api_client, topic, {"shop_domain": SHOP, "customer": {"id": 1}})
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "topic": topic}


# 方法 1：shop/redact 删除该店铺全部数据
def test_shop_redact_deletes_shop_data(api_client, db, session_factory):
    job_repo.create_job_with_imports(db, SHOP, [Product(handle="a", title="A")])
    job_repo.create_job_with_imports(db, "other.myshopify.com", [Product(handle="b", title="B")])
    session_repo.upsert_offline_session(db, SHOP, "shpat_test")

    resp = _post(api_client, "shop/redact", {"shop_domain": SHOP})

    assert resp.status_code == 200
    assert resp.json()["deleted"] == {"imports": 1, "jobs": 1, "sessions": 1}
    with session_factory() as s:
        assert [j.shop_domain for j in s.query(Job)] == ["other.myshopify.com"]


# 方法 2：卸载只删 session，历史 Job 保留
def test_app_uninstalled_drops_sessions(api_client, db, session_factory):
    job_repo.create_job_with_imports(db, SHOP, [Product(handle="a", title="A")])
    session_repo.upsert_offline_session(db, SHOP, "shpat_test")

    resp = _post(api_client, "app/uninstalled", {"myshopify_domain": SHOP})

    assert resp.json() == {"ok": True, "topic": "app/uninstalled", "sessions": 1}
    with session_factory() as s:
        assert s.query(ShopSession).count() == 0
        assert s.query(Job).count() == 1


def test_unknown_topic_is_ignored(api_client):
    resp = _post(api_client, "orders/create", {"id": 1})
    assert resp.status_code == 200
    assert resp.json()["ignored"] == "topic=orders/create"
