"""
In-memory trigger-report store -- sample data for offline dev and tests.

Filtering follows the same rules as the SQL store: case-insensitive substring
match on the strategy name, inclusive bounds, whitelisted sort with a stable
strategy-name tiebreak.  An inverted range simply matches nothing.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

from src.nlq.filters import FilterSpec, COUNT_METRICS, RATE_METRICS, SORT_FIELDS, DEFAULT_SORT_BY
from src.triggers.models import TriggerReport, summarise
from src.core.logging import get_logger

logger = get_logger(__name__)

# Rate filter metric -> TriggerReport attribute
_RATE_ATTRS: dict[str, str] = {
    "click_rate_percentage": "click_rate",
    "open_rate_percentage": "open_rate",
    "delivery_rate_percentage": "delivery_rate",
    "bounce_rate_percentage": "bounce_rate",
}


def sample_reports(now: datetime | None = None) -> list[TriggerReport]:
    """Six realistic strategies plus two edge cases (no sends, no deliveries)."""
    now = now or datetime.utcnow().replace(microsecond=0)
    base = now - timedelta(days=30)
    rows: list[dict[str, Any]] = [
        dict(strategy_name="Welcome Series", total_emails=1500, delivered_count=1425,
             bounced_count=75, opened_count=712, clicked_count=285, complained_count=5,
             unsubscribed_count=12, first_email_sent=base, last_email_sent=now - timedelta(hours=2)),
        dict(strategy_name="Promotional Campaign", total_emails=2800, delivered_count=2664,
             bounced_count=136, opened_count=1065, clicked_count=532, complained_count=8,
             unsubscribed_count=23, first_email_sent=base + timedelta(days=5),
             last_email_sent=now - timedelta(hours=1)),
        dict(strategy_name="Newsletter Monthly", total_emails=5200, delivered_count=4940,
             bounced_count=260, opened_count=1976, clicked_count=494, complained_count=12,
             unsubscribed_count=35, first_email_sent=base + timedelta(days=10),
             last_email_sent=now - timedelta(hours=3)),
        dict(strategy_name="Abandoned Cart", total_emails=920, delivered_count=874,
             bounced_count=46, opened_count=437, clicked_count=175, complained_count=3,
             unsubscribed_count=8, first_email_sent=base + timedelta(days=7),
             last_email_sent=now - timedelta(minutes=45)),
        dict(strategy_name="Customer Feedback", total_emails=650, delivered_count=617,
             bounced_count=33, opened_count=309, clicked_count=123, complained_count=2,
             unsubscribed_count=4, first_email_sent=base + timedelta(days=12),
             last_email_sent=now - timedelta(hours=6)),
        dict(strategy_name="Re-engagement", total_emails=1100, delivered_count=1045,
             bounced_count=55, opened_count=418, clicked_count=104, complained_count=7,
             unsubscribed_count=18, first_email_sent=base + timedelta(days=15),
             last_email_sent=now - timedelta(hours=4)),
        dict(strategy_name="Black Friday Preview", total_emails=300, delivered_count=0,
             bounced_count=300, opened_count=0, clicked_count=0, complained_count=0,
             unsubscribed_count=0, first_email_sent=base + timedelta(days=20),
             last_email_sent=base + timedelta(days=20)),
        dict(strategy_name="Dormant Trigger", total_emails=0),
    ]
    return [TriggerReport(**row) for row in rows]


def _matches(report: TriggerReport, spec: FilterSpec) -> bool:
    if spec.strategy_name and spec.strategy_name.lower() not in report.strategy_name.lower():
        return False

    first = report.first_email_sent
    if spec.first_email_sent_from is not None and (first is None or first < spec.first_email_sent_from):
        return False
    if spec.first_email_sent_to is not None and (first is None or first > spec.first_email_sent_to):
        return False

    bounds: list[tuple[str, float]] = [(m, getattr(report, m)) for m in COUNT_METRICS]
    bounds += [(m, getattr(report, _RATE_ATTRS[m])) for m in RATE_METRICS]
    for metric, value in bounds:
        low = getattr(spec, f"min_{metric}")
        high = getattr(spec, f"max_{metric}")
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
    return True


def _sort_key(field: str) -> Callable[[TriggerReport], Any]:
    if field == "strategy_name":
        return lambda r: r.strategy_name.lower()
    if field in ("first_email_sent", "last_email_sent"):
        return lambda r: getattr(r, field) or datetime.min
    return lambda r: getattr(r, field)


class InMemoryTriggerReportStore:
    """Trigger-report store backed by a plain list."""

    def __init__(self, reports: list[TriggerReport] | None = None):
        self._reports = list(reports) if reports is not None else sample_reports()

    def query_filtered(self, spec: FilterSpec) -> tuple[list[TriggerReport], int]:
        matched = [r for r in self._reports if _matches(r, spec)]
        sort_by = spec.sort_by if spec.sort_by in SORT_FIELDS else DEFAULT_SORT_BY
        matched.sort(key=_sort_key("strategy_name"))
        matched.sort(key=_sort_key(sort_by), reverse=spec.sort_direction == "desc")

        offset = (spec.page_number - 1) * spec.page_size
        page = matched[offset: offset + spec.page_size]
        logger.info("Memory store: %d of %d reports matched, returning %d",
                    len(matched), len(self._reports), len(page))
        return page, len(matched)

    def query_summary(self) -> TriggerReport:
        return summarise(self._reports)

    def query_by_strategy_name(self, name: str) -> TriggerReport | None:
        wanted = name.strip().lower()
        for report in self._reports:
            if report.strategy_name.lower() == wanted:
                return report
        return None

    def query_strategy_names(self) -> list[str]:
        return sorted({r.strategy_name for r in self._reports}, key=str.lower)

    def list_reports(self, page_size: int = 50, offset: int = 0) -> list[TriggerReport]:
        return self._reports[offset: offset + page_size]
