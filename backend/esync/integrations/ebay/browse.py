"""
eBay Browse API 高层封装（item_summary/search + getItem）：
   - search_seller_items：按卖家 + 类目分页拉取，累计到 quota 即停；单个类目出错记日志后跳过；
     鉴权失败（EbayAuthError）直接抛出，任何类目都不可能成功；
   - validate_seller：遍历固定类目表汇总卖家商品数，顺带取一个样例商品；
   - preview：在已选类目里找到第一个样例商品 + 该类目总数；
   - get_item：按 legacyItemId 取单个商品（Browse API 需要 v1|<id>|0 格式）。
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from esync.core.config import settings
from esync.integrations.ebay.categories import EBAY_CATEGORIES
from esync.integrations.ebay.errors import EbayAuthError, EbayError, EbayPayloadError
from esync.integrations.ebay.http_client import EbayHttpClient

logger = logging.getLogger(__name__)

SEARCH_PATH = "/buy/browse/v1/item_summary/search"
ITEM_PATH = "/buy/browse/v1/item/{item_id}"


def seller_filter(seller: str) -> str:
    return f"sellers:{{{seller}}}"


def browse_item_id(legacy_item_id: str) -> str:
    return f"v1|{legacy_item_id}|0"


@dataclass
class SellerTotals:
    category_ids: List[str] = field(default_factory=list)
    total_found: int = 0
    sample_item: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "categoryIds": list(self.category_ids),
            "totalFound": self.total_found,
            "sampleItem": self.sample_item,
        }


@dataclass
class PreviewResult:
    total_items: int
    sample_item: Dict[str, Any]


class EbayBrowseAPI:
    """封装 Browse API 查询；http 客户端可注入，便于测试。"""

    def __init__(
        self,
        http: Optional[EbayHttpClient] = None,
        *,
        page_size: Optional[int] = None,
        page_delay_ms: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.http = http or EbayHttpClient()
        self.page_size = max(1, min(200, int(page_size or settings.EBAY_PAGE_SIZE)))
        self.page_delay_ms = settings.EBAY_PAGE_DELAY_MS if page_delay_ms is None else page_delay_ms
        self._sleep = sleep

    # ---------------- 搜索 ----------------
    def search_seller_items(
        self,
        seller: str,
        categories: Sequence[str],
        *,
        sort: Optional[str] = None,
        quota: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        逐类目分页拉取卖家商品：
          1) 每页 limit=page_size，offset 递增，直到 offset >= total
          2) 已收集数量达到 quota 立即停止（包括跨类目）
          3) 某个类目请求失败：记日志，停止该类目，继续下一个
        """
        limit = max(1, min(200, int(page_size or self.page_size)))
        quota = int(quota or settings.EBAY_DEFAULT_QUOTA)
        sort = sort or settings.EBAY_DEFAULT_SORT
        items: List[Dict[str, Any]] = []

        for category_id in categories:
            if len(items) >= quota:
                break
            offset = 0
            while True:
                params = {
                    "category_ids": category_id,
                    "fieldgroups": "EXTENDED",
                    "filter": seller_filter(seller),
                    "sort": sort,
                    "limit": limit,
                    "offset": offset,
                }
                try:
                    data = self._search(params)
                except EbayAuthError:
                    raise
                except EbayError as e:
                    logger.error("ebay.search.category_failed seller=%s category=%s offset=%s err=%s",
                                 seller, category_id, offset, e)
                    break

                for item in data.get("itemSummaries") or []:
                    if len(items) >= quota:
                        break
                    items.append(item)

                total = int(data.get("total") or 0)
                offset += limit
                logger.info("ebay.search.page seller=%s category=%s offset=%s total=%s collected=%s",
                            seller, category_id, offset, total, len(items))

                if len(items) >= quota or offset >= total:
                    break
                self._pause()

        return items

    # ---------------- 卖家校验 ----------------
    def validate_seller(self, seller: str, categories: Optional[Iterable[Dict[str, str]]] = None) -> SellerTotals:
        """Aggregate the seller's item totals across the fixed top-level taxonomy."""
        totals = SellerTotals()
        for category in (categories or EBAY_CATEGORIES):
            params = {
                "q": "a",
                "category_ids": category["id"],
                "filter": seller_filter(seller),
                "limit": 1,
            }
            try:
                data = self._search(params)
            except EbayAuthError:
                raise
            except EbayError as e:
                logger.error("ebay.validate.category_failed seller=%s category=%s err=%s", seller, category["id"], e)
                continue

            category_total = int(data.get("total") or 0)
            if totals.sample_item is None:
                summaries = data.get("itemSummaries") or []
                totals.sample_item = summaries[0] if summaries else None
            if category_total > 0:
                totals.total_found += category_total
                if category["id"] not in totals.category_ids:
                    totals.category_ids.append(category["id"])
            self._pause()

        logger.info("ebay.validate.done seller=%s total=%s categories=%s",
                    seller, totals.total_found, totals.category_ids)
        return totals

    def preview(self, seller: str, categories: Sequence[str]) -> Optional[PreviewResult]:
        """First sample item in the selected categories, or None when nothing is listed."""
        for category_id in categories:
            params = {
                "category_ids": category_id,
                "fieldgroups": "EXTENDED",
                "filter": seller_filter(seller),
                "limit": 1,
                "offset": 0,
            }
            try:
                data = self._search(params)
            except EbayAuthError:
                raise
            except EbayError as e:
                logger.error("ebay.preview.category_failed seller=%s category=%s err=%s", seller, category_id, e)
                continue

            if data.get("warnings"):
                logger.warning("ebay.preview.warnings seller=%s warnings=%s", seller, data["warnings"])
            summaries = data.get("itemSummaries") or []
            if summaries:
                return PreviewResult(total_items=int(data.get("total") or 0), sample_item=summaries[0])
        return None

    # ---------------- 单品 ----------------
    def get_item(self, legacy_item_id: str) -> Dict[str, Any]:
        if not legacy_item_id:
            raise ValueError("Item ID is required.")
        data = self.http.get_json(ITEM_PATH.format(item_id=browse_item_id(str(legacy_item_id))))
        if not isinstance(data, dict):
            raise EbayPayloadError(f"getItem {legacy_item_id}: unexpected payload type {type(data).__name__}")
        return data

    # ---------------- helpers ----------------
    def _search(self, params: Dict[str, Any]) -> Dict[str, Any]:
        data = self.http.get_json(SEARCH_PATH, params=params)
        if not isinstance(data, dict):
            raise EbayPayloadError(f"search: unexpected payload type {type(data).__name__}")
        return data

    def _pause(self) -> None:
        if self.page_delay_ms > 0:
            self._sleep(self.page_delay_ms / 1000.0)
