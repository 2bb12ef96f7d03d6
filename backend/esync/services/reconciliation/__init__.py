"""
对外统一入口：Reconciliation（按 SKU 的 create-or-update）。
"""

from .options import UpsertOptions
from .upsert import ProductUpserter, UpsertResult, build_upserter, SKU_UNRESOLVED_ERROR

__all__ = ["UpsertOptions", "ProductUpserter", "UpsertResult", "build_upserter", "SKU_UNRESOLVED_ERROR"]
