"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Timestamp conversion and the injectable clock
    - parsing: Defensive field access and numeric coercion for provider payloads
    - formatting: Display strings for prices, market caps and percentages
"""

from core.utils.time import to_utc_datetime, epoch_to_iso, system_clock
from core.utils.parsing import safe_get, to_float, to_int, parse_compact_number
from core.utils.formatting import format_price, format_market_cap, format_volume, format_percentage

__all__ = [
    "to_utc_datetime",
    "epoch_to_iso",
    "system_clock",
    "safe_get",
    "to_float",
    "to_int",
    "parse_compact_number",
    "format_price",
    "format_market_cap",
    "format_volume",
    "format_percentage",
]
