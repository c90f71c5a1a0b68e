import math
import re
from typing import Any, Optional

_LEADING_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def coerce_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Parse a number the way a lenient form field would.

    Strings may carry trailing junk after a numeric prefix (``"10 USD"``).
    Booleans, NaN and infinities are rejected.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        match = _LEADING_FLOAT_RE.match(value.strip())
        if match is None:
            return default
        try:
            parsed = float(match.group(0))
        except ValueError:
            return default
    else:
        return default
    if math.isnan(parsed) or math.isinf(parsed):
        return default
    return parsed


def optional_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None


def raw_text(value: Any) -> Optional[str]:
    """Like `optional_text`, but keeps surrounding whitespace of non-blank input."""
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def optional_id(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        normalized = value.strip()
        if normalized:
            return normalized
    return None
