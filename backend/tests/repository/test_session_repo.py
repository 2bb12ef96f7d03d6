"""Offline credential lookup / storage."""

import pytest

from esync.core.errors import MissingCredentialError
from esync.db.model import ShopSession
from esync.repository import session_repo

from conftest import SHOP


def test_missing_credential(db):
    assert session_repo.load_offline_credential(db, SHOP) is None
    with pytest.raises(MissingCredentialError) as exc:
        session_repo.require_offline_credential(db, SHOP)
    assert str(exc.value) == f"Missing session for shop {SHOP}"


def test_upsert_then_load(db):
    session_repo.upsert_offline_session(db, SHOP, "shpat_one", scope="write_products")
    session_repo.upsert_offline_session(db, SHOP, "shpat_two")

    credential = session_repo.require_offline_credential(db, SHOP)
    assert credential.shop_domain == SHOP
    assert credential.access_token == "shpat_two"
    # 日志里不打印 token
    assert "shpat_two" not in repr(credential)
    assert db.query(ShopSession).count() == 1


def test_online_sessions_are_ignored(db):
    db.add(ShopSession(id=f"online_{SHOP}_1", shop_domain=SHOP, access_token="online", is_online=True))
    db.commit()
    assert session_repo.load_offline_credential(db, SHOP) is None
    assert session_repo.delete_sessions(db, SHOP) == 1
