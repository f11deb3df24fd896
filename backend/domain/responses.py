"""
Response envelope helpers shared by every router.

- Success: { "success": true, "data": <payload>, "meta": {...} }
- Error:   { "success": false, "error": { "code", "message", "details" } }  (built in main.py)
"""
from typing import Any


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """Wrap a payload; `meta` is only included when non-empty."""
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def paginated_response(
    items: list[Any],
    limit: int,
    offset: int = 0,
    total: int | None = None,
) -> dict[str, Any]:
    """
    Wrap one page of a list.

    Args:
        items: Serialized rows for this page
        limit: Page size
        offset: Index of the first row on this page
        total: Rows matching the query (defaults to len(items))

    Returns:
        success envelope with meta { limit, offset, skip, total, hasMore, page }
    """
    if total is None:
        total = len(items)

    meta = {
        "limit": limit,
        "offset": offset,
        "skip": offset,
        "total": total,
        "hasMore": (offset + limit) < total,
        "page": offset // limit + 1 if limit else 1,
    }
    return success_response(data=items, meta=meta)
