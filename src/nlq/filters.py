"""
FilterSpec -- the structured representation of a trigger-report query,
sitting between natural language and the trigger-report store.

Every bound is optional: ``None`` means "unconstrained" and ``0`` is a real
bound.  Each count and each rate metric has both a min and a max field.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field

# ── Schema tables ────────────────────────────────────────

COUNT_METRICS: tuple[str, ...] = (
    "total_emails",
    "delivered_count",
    "opened_count",
    "clicked_count",
    "bounced_count",
)

RATE_METRICS: tuple[str, ...] = (
    "click_rate_percentage",
    "open_rate_percentage",
    "delivery_rate_percentage",
    "bounce_rate_percentage",
)

# Sort key -> human label.  Rate keys sort on the derived percentage.
SORT_FIELDS: dict[str, str] = {
    "strategy_name": "strategy name",
    "total_emails": "total emails",
    "delivered_count": "delivered count",
    "bounced_count": "bounced count",
    "opened_count": "opened count",
    "clicked_count": "clicked count",
    "first_email_sent": "first email sent",
    "last_email_sent": "last email sent",
    "click_rate": "click rate",
    "open_rate": "open rate",
    "delivery_rate": "delivery rate",
    "bounce_rate": "bounce rate",
}

DEFAULT_SORT_BY = "strategy_name"
DEFAULT_SORT_DIRECTION = "asc"
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000


def _build_field_kinds() -> dict[str, str]:
    kinds: dict[str, str] = {
        "strategy_name": "text",
        "first_email_sent_from": "datetime",
        "first_email_sent_to": "datetime",
    }
    for metric in COUNT_METRICS:
        kinds[f"min_{metric}"] = "count"
        kinds[f"max_{metric}"] = "count"
    for metric in RATE_METRICS:
        kinds[f"min_{metric}"] = "rate"
        kinds[f"max_{metric}"] = "rate"
    kinds["sort_by"] = "sort_field"
    kinds["sort_direction"] = "sort_direction"
    kinds["page_number"] = "pagination"
    kinds["page_size"] = "pagination"
    return kinds


# Field name -> kind, in schema order.
FIELD_KINDS: dict[str, str] = _build_field_kinds()


# ── Model ────────────────────────────────────────────────

class FilterSpec(BaseModel):
    """Canonical trigger-report query."""

    strategy_name: str | None = Field(None, description="Case-insensitive substring of the strategy name")
    first_email_sent_from: datetime | None = Field(None, description="Inclusive lower bound on first send")
    first_email_sent_to: datetime | None = Field(None, description="Inclusive upper bound on first send")

    min_total_emails: int | None = Field(None, ge=0)
    max_total_emails: int | None = Field(None, ge=0)
    min_delivered_count: int | None = Field(None, ge=0)
    max_delivered_count: int | None = Field(None, ge=0)
    min_opened_count: int | None = Field(None, ge=0)
    max_opened_count: int | None = Field(None, ge=0)
    min_clicked_count: int | None = Field(None, ge=0)
    max_clicked_count: int | None = Field(None, ge=0)
    min_bounced_count: int | None = Field(None, ge=0)
    max_bounced_count: int | None = Field(None, ge=0)

    min_click_rate_percentage: float | None = Field(None, ge=0, le=100)
    max_click_rate_percentage: float | None = Field(None, ge=0, le=100)
    min_open_rate_percentage: float | None = Field(None, ge=0, le=100)
    max_open_rate_percentage: float | None = Field(None, ge=0, le=100)
    min_delivery_rate_percentage: float | None = Field(None, ge=0, le=100)
    max_delivery_rate_percentage: float | None = Field(None, ge=0, le=100)
    min_bounce_rate_percentage: float | None = Field(None, ge=0, le=100)
    max_bounce_rate_percentage: float | None = Field(None, ge=0, le=100)

    sort_by: str = Field(DEFAULT_SORT_BY, description=f"One of: {', '.join(SORT_FIELDS)}")
    sort_direction: Literal["asc", "desc"] = DEFAULT_SORT_DIRECTION

    page_number: int = Field(1, ge=1, description="1-based page number")
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


_DEFAULTS = FilterSpec()


# ── Helpers ──────────────────────────────────────────────

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def normalize_field_name(name: str) -> str:
    """``MinClickRatePercentage`` / ``minClickRatePercentage`` -> ``min_click_rate_percentage``."""
    snake = _CAMEL_RE.sub("_", name.strip())
    snake = re.sub(r"[\s\-]+", "_", snake)
    return snake.lower()


def normalize_sort_field(name: str) -> str | None:
    """Resolve a loosely-spelled sort field to a key of ``SORT_FIELDS``.

    Accepts ``ClickedCount``, ``clickedcount``, ``MinOpenRatePercentage``
    (the rate it bounds) and so on.  Returns ``None`` when nothing matches.
    """
    snake = normalize_field_name(name)
    snake = re.sub(r"^(min|max)_", "", snake)
    snake = re.sub(r"_percentage$", "", snake)
    compact = snake.replace("_", "")
    for key in SORT_FIELDS:
        if compact == key.replace("_", ""):
            return key
    return None


def range_pairs() -> list[tuple[str, str]]:
    """All (lower, upper) bound pairs, in schema order."""
    pairs = [("first_email_sent_from", "first_email_sent_to")]
    for metric in COUNT_METRICS + RATE_METRICS:
        pairs.append((f"min_{metric}", f"max_{metric}"))
    return pairs


def inverted_ranges(values: FilterSpec | Mapping[str, Any]) -> list[tuple[str, str]]:
    """Pairs where both bounds are set and lower > upper.

    *values* is a ``FilterSpec`` or a plain mapping of typed field values.
    """
    if isinstance(values, FilterSpec):
        values = values.model_dump()
    inverted: list[tuple[str, str]] = []
    for low, high in range_pairs():
        lo, hi = values.get(low), values.get(high)
        if lo is not None and hi is not None and lo > hi:
            inverted.append((low, high))
    return inverted


def constrained_fields(spec: FilterSpec) -> list[str]:
    """Names of non-pagination fields whose value differs from the default."""
    names: list[str] = []
    for name, kind in FIELD_KINDS.items():
        if kind == "pagination":
            continue
        if getattr(spec, name) != getattr(_DEFAULTS, name):
            names.append(name)
    return names


def is_unconstrained(spec: FilterSpec) -> bool:
    """True when no field narrows the result set (sort/pagination aside)."""
    return not any(
        getattr(spec, name) is not None
        for name, kind in FIELD_KINDS.items()
        if kind in ("text", "datetime", "count", "rate")
    )


def generated_parameters(spec: FilterSpec) -> dict[str, Any]:
    """The exact parameter mapping handed to the trigger-report store."""
    return spec.model_dump(mode="json")
