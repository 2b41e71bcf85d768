import math
from typing import Any, Sequence


def visible_range(
    scroll_offset: float,
    item_size: float,
    viewport_size: float,
    item_count: int,
    overscan: int = 5,
) -> tuple[int, int]:
    """Inclusive (start, end) indices of the items a viewport shows, widened by ``overscan``."""
    if item_count <= 0:
        return 0, -1
    if item_size <= 0:
        raise ValueError("item_size must be positive")
    last = item_count - 1
    start = max(0, math.floor(max(0.0, scroll_offset) / item_size))
    start = min(start, last)
    end = min(start + math.ceil(max(0.0, viewport_size) / item_size), last)
    return max(0, start - overscan), min(last, end + overscan)


def paginate(items: Sequence[Any], offset: int, limit: int) -> dict[str, Any]:
    total = len(items)
    start = max(0, offset)
    window = list(items[start : start + limit]) if limit > 0 else []
    return {
        "items": window,
        "total": total,
        "offset": start,
        "limit": limit,
        "has_more": start + len(window) < total,
    }
