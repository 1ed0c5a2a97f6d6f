"""
Display formatting for dashboard figures.
"""
import math


def _round(value: float) -> int:
    # Halves round up, not to even
    return math.floor(value + 0.5)


def format_number(num: float) -> str:
    """Compact count: 1.2M, 3.4K, or the number itself below 1000."""
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1000:
        return f"{num / 1000:.1f}K"
    if float(num).is_integer():
        return str(int(num))
    return str(num)


def format_duration(seconds: float) -> str:
    """45s, 3m or 3m 5s."""
    if seconds < 60:
        return f"{_round(seconds)}s"
    minutes = int(seconds // 60)
    remaining = _round(seconds % 60)
    if remaining == 60:
        minutes, remaining = minutes + 1, 0
    return f"{minutes}m {remaining}s" if remaining > 0 else f"{minutes}m"


def format_percentage(value: float) -> str:
    return f"{_round(value)}%"


def format_change(change: float | None) -> tuple[str, bool]:
    """Signed change label and whether it is an increase.

    None and 0 both render as ("0%", False).
    """
    if not change:
        return "0%", False

    is_positive = change > 0
    sign = "+" if is_positive else ""
    return f"{sign}{_round(change)}%", is_positive
