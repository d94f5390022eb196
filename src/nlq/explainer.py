"""
Plain-language summary of a FilterSpec.

The summary is always regenerated from the final filter, so it describes
what was actually applied rather than what the backend claimed to extract.
"""
from __future__ import annotations

from datetime import datetime, time

from src.nlq.filters import (
    COUNT_METRICS,
    RATE_METRICS,
    SORT_FIELDS,
    FilterSpec,
    is_unconstrained,
    DEFAULT_SORT_BY,
    DEFAULT_SORT_DIRECTION,
)

NO_FILTERS = "No filters applied - showing all strategies"

_COUNT_LABELS: dict[str, str] = {
    "total_emails": "total emails",
    "delivered_count": "delivered emails",
    "opened_count": "opens",
    "clicked_count": "clicks",
    "bounced_count": "bounces",
}

_RATE_LABELS: dict[str, str] = {
    "click_rate_percentage": "click rate",
    "open_rate_percentage": "open rate",
    "delivery_rate_percentage": "delivery rate",
    "bounce_rate_percentage": "bounce rate",
}


def _fmt_number(value: float) -> str:
    return f"{value:g}"


def _fmt_date(value: datetime) -> str:
    if value.time() in (time.min, time.max):
        return value.strftime("%Y-%m-%d")
    return value.strftime("%Y-%m-%d %H:%M")


def _bound_phrase(label: str, low, high, suffix: str = "") -> str | None:
    if low is not None and high is not None:
        return f"{label} between {_fmt_number(low)}{suffix} and {_fmt_number(high)}{suffix}"
    if low is not None:
        return f"{label} at least {_fmt_number(low)}{suffix}"
    if high is not None:
        return f"{label} at most {_fmt_number(high)}{suffix}"
    return None


def describe_filters(spec: FilterSpec) -> str:
    """Return a one-sentence description of the constraints in *spec*."""
    parts: list[str] = []

    if spec.strategy_name:
        parts.append(f"strategy name contains '{spec.strategy_name}'")

    start, end = spec.first_email_sent_from, spec.first_email_sent_to
    if start and end:
        parts.append(f"first sent between {_fmt_date(start)} and {_fmt_date(end)}")
    elif start:
        parts.append(f"first sent on or after {_fmt_date(start)}")
    elif end:
        parts.append(f"first sent on or before {_fmt_date(end)}")

    for metric in COUNT_METRICS:
        phrase = _bound_phrase(_COUNT_LABELS[metric],
                               getattr(spec, f"min_{metric}"), getattr(spec, f"max_{metric}"))
        if phrase:
            parts.append(phrase)

    for metric in RATE_METRICS:
        phrase = _bound_phrase(_RATE_LABELS[metric],
                               getattr(spec, f"min_{metric}"), getattr(spec, f"max_{metric}"), "%")
        if phrase:
            parts.append(phrase)

    sorted_custom = (spec.sort_by, spec.sort_direction) != (DEFAULT_SORT_BY, DEFAULT_SORT_DIRECTION)
    if is_unconstrained(spec):
        summary = NO_FILTERS
    else:
        summary = "Showing strategies where " + "; ".join(parts)

    if sorted_custom:
        label = SORT_FIELDS.get(spec.sort_by, spec.sort_by)
        if spec.sort_by == "strategy_name":
            order = "Z-A" if spec.sort_direction == "desc" else "A-Z"
        else:
            order = "highest first" if spec.sort_direction == "desc" else "lowest first"
        summary += f", sorted by {label} ({order})"
    return summary
