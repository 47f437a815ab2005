"""Formatting utilities for display."""
from utils.clock import ensure_utc, utc_now


def format_kwh(value):
    if value is None:
        return "N/A"
    value = float(value)
    if abs(value) >= 1_000_000:
        return f"{value / 1_000_000:,.2f} GWh"
    if abs(value) >= 1_000:
        return f"{value / 1_000:,.2f} MWh"
    return f"{value:,.1f} kWh"


def format_pct(value, decimals=1):
    if value is None:
        return "N/A"
    return f"{float(value):.{decimals}f}%"


def format_timestamp(ts):
    """Format a datetime to human-readable string."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    return ensure_utc(ts).strftime("%Y-%m-%d %H:%M UTC")


def time_ago(dt, now=None):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "N/A"
    now = now or utc_now()
    seconds = int((now - ensure_utc(dt)).total_seconds())

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    else:
        return f"{seconds // 86400}d ago"


PRIORITY_COLORS = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "blue",
}


def priority_markup(priority):
    """Rich markup for a priority label."""
    value = getattr(priority, "value", priority)
    color = PRIORITY_COLORS.get(value, "white")
    return f"[{color}]{value}[/{color}]"
