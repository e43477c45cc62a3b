"""
Display Formatting Helpers

Human-readable renderings of market values for dashboards and CLI output.

Examples:
    >>> format_price(43250.67)
    '$43,250.67'
    >>> format_market_cap(847_123_456_789)
    '$847.12B'
    >>> format_percentage(-3.1)
    '-3.10%'
"""

# Magnitudes for compact money amounts, largest first
_MONEY_UNITS = (
    (1e12, "T"),
    (1e9, "B"),
    (1e6, "M"),
)


def format_price(price: float) -> str:
    """
    Price with precision that grows as the value shrinks.

        < 0.01  -> 6 decimals   ($0.000012)
        < 1     -> 4 decimals   ($0.5123)
        < 100   -> 2 decimals   ($42.10)
        else    -> thousands separators, 2 decimals
    """
    if price < 0.01:
        return f"${price:.6f}"
    if price < 1:
        return f"${price:.4f}"
    if price < 100:
        return f"${price:.2f}"
    return f"${price:,.2f}"


def format_market_cap(market_cap: float) -> str:
    """Compact T/B/M amount with 2 decimals; smaller values get thousands separators."""
    for threshold, unit in _MONEY_UNITS:
        if market_cap >= threshold:
            return f"${market_cap / threshold:.2f}{unit}"
    return f"${market_cap:,.0f}"


def format_volume(volume: float) -> str:
    return format_market_cap(volume)


def format_percentage(percentage: float) -> str:
    """Signed percentage with 2 decimals; zero counts as positive."""
    sign = "+" if percentage >= 0 else "-"
    return f"{sign}{abs(percentage):.2f}%"
