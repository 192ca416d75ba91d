"""Pagination and sort helpers for list endpoints."""

MAX_LIMIT = 100


def paginate(limit: int, offset: int, max_limit: int = MAX_LIMIT) -> tuple[int, int]:
    """Clamp limit/offset; return (limit, offset)."""
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    return limit, offset


def sort_key(field: str, order: str) -> str:
    """Beanie sort expression: '-field' for descending."""
    return field if order == "asc" else f"-{field}"
