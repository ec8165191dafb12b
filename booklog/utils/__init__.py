from .books import cover_url, normalize_work_key, parse_publication_year
from .sorting import SORT_FIELDS, parse_sort_spec

__all__ = [
    "cover_url",
    "normalize_work_key",
    "parse_publication_year",
    "parse_sort_spec",
    "SORT_FIELDS",
]
