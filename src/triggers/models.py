"""
TriggerReport -- aggregated send/delivery/engagement counters for one strategy.

Rates are derived from the counts as ``count / denominator * 100`` and are
always 0 when the denominator is 0.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, computed_field


def _rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 2)


class TriggerReport(BaseModel):
    """One row of the trigger-report dataset."""

    strategy_name: str = Field(..., description="Strategy (email trigger) name")
    total_emails: int = 0
    delivered_count: int = 0
    bounced_count: int = 0
    opened_count: int = 0
    clicked_count: int = 0
    complained_count: int = 0
    unsubscribed_count: int = 0
    first_email_sent: datetime | None = None
    last_email_sent: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def delivery_rate(self) -> float:
        return _rate(self.delivered_count, self.total_emails)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def bounce_rate(self) -> float:
        return _rate(self.bounced_count, self.total_emails)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def open_rate(self) -> float:
        return _rate(self.opened_count, self.delivered_count)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def click_rate(self) -> float:
        return _rate(self.clicked_count, self.delivered_count)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def complaint_rate(self) -> float:
        return _rate(self.complained_count, self.delivered_count)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def unsubscribe_rate(self) -> float:
        return _rate(self.unsubscribed_count, self.delivered_count)


SUMMARY_STRATEGY_NAME = "ALL_STRATEGIES_SUMMARY"


def summarise(reports: list[TriggerReport]) -> TriggerReport:
    """Fold many reports into one overall summary row."""
    firsts = [r.first_email_sent for r in reports if r.first_email_sent is not None]
    lasts = [r.last_email_sent for r in reports if r.last_email_sent is not None]
    return TriggerReport(
        strategy_name=SUMMARY_STRATEGY_NAME,
        total_emails=sum(r.total_emails for r in reports),
        delivered_count=sum(r.delivered_count for r in reports),
        bounced_count=sum(r.bounced_count for r in reports),
        opened_count=sum(r.opened_count for r in reports),
        clicked_count=sum(r.clicked_count for r in reports),
        complained_count=sum(r.complained_count for r in reports),
        unsubscribed_count=sum(r.unsubscribed_count for r in reports),
        first_email_sent=min(firsts) if firsts else None,
        last_email_sent=max(lasts) if lasts else None,
    )
