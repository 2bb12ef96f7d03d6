#!/usr/bin/env python3
from __future__ import annotations
import argparse

from esync.db.session import session_scope
from esync.repository.session_repo import upsert_offline_session


# 本地 / 测试店铺没走 OAuth 安装流程时，手工写入 offline token：
# python scripts/store_session.py my-store.myshopify.com shpat_xxx --scope write_products,write_inventory

def main():
    ap = argparse.ArgumentParser(description="Store an offline Admin API token for a shop.")
    ap.add_argument("shop")
    ap.add_argument("token")
    ap.add_argument("--scope", default=None)
    args = ap.parse_args()

    shop = args.shop.strip().lower()
    with session_scope() as db:
        upsert_offline_session(db, shop, args.token.strip(), scope=args.scope)
    print(f"Offline session stored for {shop}")


if __name__ == "__main__":
    main()
