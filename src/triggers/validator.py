"""
Validates a FilterSpec supplied directly by a caller (the ``/filtered`` route).

Checks performed:
  1. Page number is at least 1 and page size within [1, max_page_size]
  2. Sort field is one of the whitelisted sort keys
  3. Sort direction is asc or desc
  4. Rate bounds lie within 0..100 and count bounds are non-negative
  5. No min/max (or from/to) pair is inverted
"""
from __future__ import annotations

from typing import Any

from src.nlq.filters import FIELD_KINDS, SORT_FIELDS, FilterSpec, inverted_ranges
from src.core.config import get_settings


def validate_filter(spec: FilterSpec | dict[str, Any], max_page_size: int | None = None) -> list[str]:
    """Return a list of validation error messages (empty list = filter is valid).

    Accepts either a built ``FilterSpec`` or the raw dict of query values, so
    callers can report every problem at once instead of the first pydantic error.
    """
    if max_page_size is None:
        max_page_size = get_settings().max_page_size
    values = spec.model_dump() if isinstance(spec, FilterSpec) else dict(spec)
    errors: list[str] = []

    page_number = values.get("page_number", 1)
    page_size = values.get("page_size", get_settings().default_page_size)
    if not isinstance(page_number, int) or page_number < 1:
        errors.append("Page number must be greater than 0.")
    if not isinstance(page_size, int) or not 1 <= page_size <= max_page_size:
        errors.append(f"Page size must be between 1 and {max_page_size}.")

    sort_by = values.get("sort_by") or "strategy_name"
    if sort_by not in SORT_FIELDS:
        errors.append(f"Unknown sort field '{sort_by}'. Allowed: {', '.join(SORT_FIELDS)}")

    direction = values.get("sort_direction") or "asc"
    if str(direction).lower() not in ("asc", "desc"):
        errors.append(f"Sort direction must be 'asc' or 'desc', got '{direction}'.")

    for name, kind in FIELD_KINDS.items():
        value = values.get(name)
        if value is None:
            continue
        if kind == "rate" and not 0 <= value <= 100:
            errors.append(f"'{name}' must be between 0 and 100.")
        elif kind == "count" and value < 0:
            errors.append(f"'{name}' must not be negative.")

    for low, high in inverted_ranges(values):
        errors.append(f"'{low}' cannot be greater than '{high}'.")

    return errors
