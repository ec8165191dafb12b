"""Sort specifications for the personal library listing.

Clients ask for an order with ``field:direction`` strings such as
``rating:asc`` or ``title:desc``. Only a fixed set of fields may be sorted
on; anything else falls back to the most recently updated books first.
"""

from typing import Any, List, Optional, Tuple

SortSpec = List[Tuple[str, int]]

ASCENDING = 1
DESCENDING = -1

SORT_FIELDS = ("updatedAt", "createdAt", "title", "author", "rating", "publishYear")

DEFAULT_SORT: SortSpec = [("updatedAt", DESCENDING)]


def parse_sort_spec(spec: Optional[str]) -> SortSpec:
    """Parse ``field:asc|desc`` into a store sort specification.

    Args:
        spec: Raw sort parameter, e.g. ``"rating:asc"``. The direction is
            optional and defaults to descending.

    Returns:
        A single-key sort list. Unknown fields or a missing spec give
        ``DEFAULT_SORT``; an unknown direction is treated as descending.
    """
    if not spec or not isinstance(spec, str):
        return list(DEFAULT_SORT)

    raw_field, _, raw_direction = spec.partition(":")
    field = raw_field.strip()
    direction = (raw_direction or "desc").strip().lower()

    if field not in SORT_FIELDS:
        return list(DEFAULT_SORT)

    return [(field, ASCENDING if direction == "asc" else DESCENDING)]


def sort_key(value: Any) -> Tuple[int, Any]:
    """Key used by the stores: missing values first, strings case-insensitively."""
    if value is None:
        return (0, 0)
    if isinstance(value, str):
        return (1, value.casefold())
    return (1, value)
