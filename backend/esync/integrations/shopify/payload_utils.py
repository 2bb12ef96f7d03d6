from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List


def normalize_tags(value: Any) -> List[str]:
    """
    将标签归一化为字符串列表：
      - list/tuple：逐个 strip，丢掉空值
      - 逗号分隔的字符串：split 后 strip
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return []


def join_tags(tags: Iterable[str]) -> str:
    """按首次出现顺序去重后用 ", " 拼接（Shopify REST 的 tags 字段是单个字符串）。"""
    seen: set[str] = set()
    out: List[str] = []
    for tag in tags:
        if tag and tag not in seen:
            seen.add(tag)
            out.append(tag)
    return ", ".join(out)


def normalize_shopify_price(value: Any) -> str | None:
    """
    将价格转换为 Shopify 接受的两位小数字符串，失败则返回 None。
    """
    if value is None or value == "":
        return None
    try:
        return str(Decimal(str(value)).quantize(Decimal("0.01")))
    except (InvalidOperation, ValueError, TypeError):
        return None
