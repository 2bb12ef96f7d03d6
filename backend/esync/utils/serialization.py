from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
import json
import math
import uuid


ERROR_TEXT_LIMIT = 2000


def to_jsonable(value: Any):
    """
    Recursively convert arbitrary Python values into JSON-serializable primitives.
    """
    if isinstance(value, Decimal):
        f = float(value)
        if math.isnan(f) or math.isinf(f):
            return None
        return f
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
    return value


def to_error_text(value: Any, limit: int = ERROR_TEXT_LIMIT) -> str:
    """
    Flatten an error payload (exception, str, dict/list body) into the plain string stored on Job/Import.
    """
    if isinstance(value, BaseException):
        text = str(value) or type(value).__name__
    elif isinstance(value, str):
        text = value
    else:
        text = json.dumps(to_jsonable(value), ensure_ascii=False)
    return text[:limit] + "…" if len(text) > limit else text
