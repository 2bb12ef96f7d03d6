import json


# 按 SKU 精确查找变体所属商品：
#   - Shopify 的 search syntax 对 sku: 是分词匹配，返回结果要在客户端再做一次全等比较
#   - first 取小批量（而不是 1），避免前缀相同的 SKU 抢占第一条
PRODUCT_VARIANTS_BY_SKU = """
query productVariantsBySku($query: String!, $first: Int!) {
  productVariants(first: $first, query: $query) {
    edges {
      node {
        id
        sku
        product {
          id
        }
      }
    }
  }
}
""".strip()


SHOP_PING = """
{
  shop {
    name
    myshopifyDomain
  }
}
""".strip()


# 转义搜索值并统一包裹双引号，确保 SKU 里的空格/冒号不会破坏 query 语法
def escape_for_query(value: str) -> str:
    """转义值供 Shopify 搜索字符串使用，并统一包裹双引号。"""
    escaped = json.dumps(value or "")[1:-1]
    return f'"{escaped}"'


def sku_search_query(sku: str) -> str:
    return f"sku:{escape_for_query(sku)}"


def gid_to_numeric_id(gid: str | None) -> str | None:
    """gid://shopify/Product/123 → "123"（REST 端点用数字 id）。"""
    if not gid:
        return None
    return str(gid).rsplit("/", 1)[-1] or None
