"""
General helper utilities
"""
import math
from typing import Any, Optional


def to_str(value: Any) -> Optional[str]:
    """None/blank -> None, else stripped string"""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_float(value: Any) -> Optional[float]:
    """Loose number parsing; blanks and garbage become None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    return str(value).strip().lower() in {"true", "1", "yes", "y"}


def first_present(row: dict, *keys: str) -> Any:
    """Value of the first key present with a non-None value"""
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return None
