"""交易日志 JSON 序列化辅助。"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any


def sanitize_for_json(obj: Any) -> Any:
    """
    递归转换为标准 JSON 可写对象：

    - NaN/Inf -> 字符串（避免写出 Infinity/NaN）
    - datetime -> ISO 字符串
    - Enum -> value
    """
    if isinstance(obj, Enum):
        return sanitize_for_json(obj.value)
    if isinstance(obj, float):
        if math.isnan(obj):
            return "nan"
        if math.isinf(obj):
            return "inf" if obj > 0 else "-inf"
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_for_json(v) for v in obj]
    return obj
