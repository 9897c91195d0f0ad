"""
Query filter helpers shared by the listing repositories.
"""


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input only matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_pattern(value: str) -> str:
    """ILIKE pattern matching ``value`` anywhere in the column."""
    return f"%{escape_like(value.strip())}%"
