from __future__ import annotations


def calc_next_delay(attempts: int, base_seconds: float = 5, max_seconds: float = 60) -> float:
    """
    指数退避：1次失败→base，之后翻倍，直到 max_seconds。
    attempts: 连续失败次数（含本次）
    """
    attempts = max(1, attempts)
    delay = base_seconds * (2 ** (attempts - 1))
    return min(max_seconds, delay)
