#!/usr/bin/env python3
from __future__ import annotations
import argparse, json, sys

from esync.db.session import session_scope
from esync.integrations.shopify import ShopifyStoreClient
from esync.repository.session_repo import load_offline_credential


# 用库里存的 offline token 探测店铺连通性（token / 域名 / API 版本是否 OK）
# 运行：
# export $(grep -v '^#' .env | xargs)   # 若你用 .env
# python scripts/ping_shopify.py my-store.myshopify.com

def main():
    ap = argparse.ArgumentParser(description="Ping the Shopify Admin API with the stored offline session.")
    ap.add_argument("shop", help="e.g. my-store.myshopify.com")
    args = ap.parse_args()

    shop = args.shop.strip().lower()
    with session_scope() as db:
        credential = load_offline_credential(db, shop)
    if credential is None:
        print(f"ERROR: no offline session stored for {shop}", file=sys.stderr)
        sys.exit(2)

    cli = ShopifyStoreClient(credential.shop_domain, credential.access_token)
    try:
        print(json.dumps(cli.ping(), ensure_ascii=False, indent=2))
    finally:
        cli.close()


if __name__ == "__main__":
    main()


# 看到返回 shop.name / myshopifyDomain 说明域名、版本、token 都 OK
