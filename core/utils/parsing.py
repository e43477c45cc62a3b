"""
Payload Parsing Helpers

Provider payloads are untrusted: fields go missing, numbers arrive as strings,
nulls appear where objects are documented, and some providers only ship
display strings such as "$ 847.12 B". These helpers coerce such values into
safe defaults so response transformers never raise.
"""

import functools
import math
import re
from typing import Any, Callable, Dict, Optional, TypeVar

from core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Fixed suffix table for human-readable amounts; any other suffix multiplies by 1
SUFFIX_MULTIPLIERS: Dict[str, float] = {
    "K": 1e3,
    "M": 1e6,
    "B": 1e9,
}

# A suffix only counts as a standalone letter: "12.5 BTC" is 12.5, not 12.5e9
_NUMBER_RE = re.compile(r"(-?\d[\d,]*(?:\.\d+)?|-?\.\d+)(?:\s*([KMB])(?![A-Za-z]))?", re.IGNORECASE)


def safe_get(d: Any, path: str, default: Any = None) -> Any:
    """
    Walk a dotted path through nested dicts.

    Example:
        >>> safe_get({"quote": {"USD": {"price": 1.5}}}, "quote.USD.price")
        1.5
        >>> safe_get({"quote": None}, "quote.USD.price", 0)
        0
    """
    cur: Any = d
    for key in path.split("."):
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return default if cur is None else cur


def to_float(x: Any, default: float = 0.0) -> float:
    """Coerce to a finite float, falling back to `default`."""
    if x is None or isinstance(x, bool):
        return default
    try:
        value = float(x)
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


def to_optional_float(x: Any) -> Optional[float]:
    """Like to_float but keeps "unknown" as None (supply caps, FDV)."""
    if x is None or isinstance(x, bool):
        return None
    try:
        value = float(x)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def to_int(x: Any, default: int = 0) -> int:
    """Coerce to int via float so "12.0" and 12.7 both work."""
    value = to_float(x, float(default))
    try:
        return int(value)
    except (OverflowError, ValueError):
        return default


def to_float_map(x: Any) -> Dict[str, float]:
    """Coerce a {key: number} mapping; keys are lowercased, non-numeric values dropped."""
    if not isinstance(x, dict):
        return {}
    result: Dict[str, float] = {}
    for key, value in x.items():
        number = to_optional_float(value)
        if number is not None:
            result[str(key).lower()] = number
    return result


def to_str(x: Any, default: str = "") -> str:
    """Return strings and numbers as text, anything else as `default`."""
    if isinstance(x, str):
        return x
    if isinstance(x, (int, float)) and not isinstance(x, bool):
        return str(x)
    return default


def parse_compact_number(value: Any, default: float = 0.0) -> float:
    """
    Parse a human-readable amount such as "$ 1.2B" or "43,250.67".

    Currency symbols, spaces and thousands separators are ignored. A trailing
    K, M or B (case-insensitive, not followed by another letter) multiplies
    by 1e3, 1e6 or 1e9. Trailing words such as currency codes are ignored.
    Plain numbers pass through.

    Examples:
        >>> parse_compact_number("$ 847.12 B")
        847120000000.0
        >>> parse_compact_number("1.5K")
        1500.0
        >>> parse_compact_number("19,500,000 BTC")
        19500000.0
        >>> parse_compact_number("n/a")
        0.0
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else default
    if not isinstance(value, str):
        return default

    match = _NUMBER_RE.search(value.replace("\u00a0", " "))
    if not match:
        return default

    try:
        number = float(match.group(1).replace(",", ""))
    except ValueError:
        return default

    suffix = match.group(2)
    return number * SUFFIX_MULTIPLIERS[suffix.upper()] if suffix else number


def safe_transform(default_factory: Callable[[], T]) -> Callable:
    """
    Decorator enforcing the transformer contract: never raise.

    Any exception escaping the wrapped transformer is logged and replaced by
    `default_factory()`, the empty canonical value for that endpoint.

    Example:
        >>> @safe_transform(list)
        ... def transform_markets(raw, params=None):
        ...     return [CoinMarket(**row) for row in raw]
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(raw: Any, params: Optional[Dict[str, Any]] = None) -> T:
            try:
                return func(raw, params or {})
            except Exception as e:
                logger.warning(f"Transformer {func.__name__} failed, returning empty result: {e}")
                return default_factory()
        return wrapper
    return decorator
