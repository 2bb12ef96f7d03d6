"""
公共 fixture：
   - 每个测试一个独立的 SQLite 文件库（多个 Session 各拿自己的连接，和线上 Postgres 行为一致）
   - FakeCatalogClient：ProductUpserter 需要的 6 个远端调用的内存替身
"""
from __future__ import annotations

import itertools
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

import esync.db.model  # noqa: F401  注册所有表到 Base.metadata
from esync.db.base import Base
from esync.services.reconciliation import ProductUpserter


SHOP = "test-shop.myshopify.com"


@pytest.fixture()
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'esync_test.db'}", future=True)

    @event.listens_for(eng, "connect")
    def _fk_on(dbapi_conn, _record):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=Session, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class FakeCatalogClient:
    """
    按 SKU 存商品的内存店铺：
       products: product_id → Shopify product dict（含 variants / images）
       calls:    按顺序记录调用名，便于断言“没有发任何请求”
    """

    def __init__(self, shop_domain: str = SHOP, locations: Optional[List[dict]] = None) -> None:
        self.shop_domain = shop_domain
        self.products: Dict[str, Dict[str, Any]] = {}
        self.locations = locations if locations is not None else [{"id": 11, "primary": False}, {"id": 22, "primary": True}]
        self.inventory: List[tuple] = []
        self.calls: List[str] = []
        self.fail_on: Dict[str, Exception] = {}
        self._ids = itertools.count(1001)
        self._inv_ids = itertools.count(5001)

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    def _materialise(self, product_id: str, payload: dict, images: List[dict]) -> dict:
        variants = []
        for v in payload.get("variants") or []:
            variants.append({**v, "id": next(self._ids), "inventory_item_id": next(self._inv_ids)})
        product = {**payload, "id": int(product_id), "variants": variants, "images": images}
        self.products[product_id] = product
        return product

    def find_product_by_sku(self, sku: str) -> Optional[str]:
        self._maybe_fail("find_product_by_sku")
        for pid, product in self.products.items():
            if any(v.get("sku") == sku for v in product.get("variants") or []):
                return pid
        return None

    def create_product(self, product_payload: dict) -> dict:
        self._maybe_fail("create_product")
        return self._materialise(str(next(self._ids)), product_payload, [])

    def update_product(self, product_id: str, product_payload: dict) -> dict:
        self._maybe_fail("update_product")
        images = self.products.get(product_id, {}).get("images") or []
        return self._materialise(product_id, product_payload, images)

    def add_product_image(self, product_id: str, src: str, alt=None, position=None) -> dict:
        self._maybe_fail("add_product_image")
        image = {"id": next(self._ids), "src": src, "alt": alt, "position": position}
        self.products[str(product_id)].setdefault("images", []).append(image)
        return image

    def list_locations(self) -> List[dict]:
        self._maybe_fail("list_locations")
        return list(self.locations)

    def set_inventory_level(self, location_id, inventory_item_id, available: int) -> dict:
        self._maybe_fail("set_inventory_level")
        self.inventory.append((location_id, inventory_item_id, available))
        return {"location_id": location_id, "inventory_item_id": inventory_item_id, "available": available}


@pytest.fixture()
def fake_client() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture()
def upserter(fake_client) -> ProductUpserter:
    return ProductUpserter(fake_client, shop_domain=SHOP)


@pytest.fixture()
def api_client(session_factory, fake_client):
    """
    只挂 api_v1 路由的 FastAPI 应用：
       get_db → 测试库；upserter 工厂 → 内存店铺；eBay 客户端默认不可用（用例里按需覆盖）
    """
    from fastapi import FastAPI
    from fastapi.testclient import TestClient

    from esync.api.v1 import api_v1
    from esync.api.v1.deps import get_browse_api, get_upserter_factory
    from esync.db.session import get_db

    app = FastAPI()
    app.include_router(api_v1)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    class NoEbay:
        def __getattr__(self, name):
            raise AssertionError(f"eBay client not expected in this test ({name})")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_upserter_factory] = lambda: (
        lambda cred: ProductUpserter(fake_client, shop_domain=cred.shop_domain)
    )
    app.dependency_overrides[get_browse_api] = NoEbay

    client = TestClient(app)
    return client
