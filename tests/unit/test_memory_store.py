"""
Unit tests -- in-memory trigger-report store (filtering, sorting, paging).
"""
from datetime import datetime, timedelta

import pytest

from src.nlq.filters import FilterSpec
from src.triggers.memory_store import InMemoryTriggerReportStore, sample_reports
from src.triggers.store import TriggerReportStore

NOW = datetime(2025, 6, 30, 12, 0, 0)


@pytest.fixture()
def store() -> InMemoryTriggerReportStore:
    return InMemoryTriggerReportStore(sample_reports(now=NOW))


def _names(items) -> list[str]:
    return [r.strategy_name for r in items]


def test_satisfies_protocol(store):
    assert isinstance(store, TriggerReportStore)


def test_empty_filter_returns_everything(store):
    items, total = store.query_filtered(FilterSpec())
    assert total == 8
    assert len(items) == 8


def test_default_order_is_name_ascending(store):
    items, _ = store.query_filtered(FilterSpec())
    names = _names(items)
    assert names == sorted(names, key=str.lower)


def test_strategy_name_substring_case_insensitive(store):
    items, total = store.query_filtered(FilterSpec(strategy_name="welcome"))
    assert total == 1
    assert _names(items) == ["Welcome Series"]


def test_count_bounds_inclusive(store):
    items, _ = store.query_filtered(FilterSpec(min_clicked_count=285))
    assert set(_names(items)) == {"Welcome Series", "Promotional Campaign", "Newsletter Monthly"}
    items, _ = store.query_filtered(FilterSpec(max_clicked_count=0))
    assert set(_names(items)) == {"Black Friday Preview", "Dormant Trigger"}


def test_rate_bound_uses_derived_rate(store):
    # click rates: Welcome 20.0, Abandoned 20.02, Promotional 19.97, Feedback 19.94
    items, _ = store.query_filtered(FilterSpec(min_click_rate_percentage=19.5))
    assert set(_names(items)) == {"Promotional Campaign", "Welcome Series", "Abandoned Cart", "Customer Feedback"}
    items, _ = store.query_filtered(FilterSpec(min_click_rate_percentage=20))
    assert set(_names(items)) == {"Welcome Series", "Abandoned Cart"}


def test_zero_delivery_report_has_zero_rates(store):
    items, _ = store.query_filtered(FilterSpec(strategy_name="Black Friday", max_open_rate_percentage=0))
    assert _names(items) == ["Black Friday Preview"]


def test_date_bounds_exclude_never_sent(store):
    spec = FilterSpec(first_email_sent_from=NOW - timedelta(days=365))
    items, _ = store.query_filtered(spec)
    assert "Dormant Trigger" not in _names(items)
    assert len(items) == 7


def test_date_window(store):
    # first sends are at NOW-30d + {0,5,10,7,12,15,20} days
    spec = FilterSpec(first_email_sent_from=NOW - timedelta(days=21),
                      first_email_sent_to=NOW - timedelta(days=15))
    items, _ = store.query_filtered(spec)
    assert set(_names(items)) == {"Newsletter Monthly", "Customer Feedback", "Re-engagement"}


def test_inverted_range_matches_nothing(store):
    items, total = store.query_filtered(FilterSpec(min_total_emails=1000, max_total_emails=10))
    assert items == []
    assert total == 0


def test_sort_desc_by_count(store):
    items, _ = store.query_filtered(FilterSpec(sort_by="total_emails", sort_direction="desc"))
    assert _names(items)[:2] == ["Newsletter Monthly", "Promotional Campaign"]
    assert _names(items)[-1] == "Dormant Trigger"


def test_sort_by_rate(store):
    items, _ = store.query_filtered(FilterSpec(sort_by="bounce_rate", sort_direction="desc"))
    assert _names(items)[0] == "Black Friday Preview"


def test_sort_ties_broken_by_name(store):
    items, _ = store.query_filtered(FilterSpec(sort_by="clicked_count", sort_direction="asc"))
    assert _names(items)[:2] == ["Black Friday Preview", "Dormant Trigger"]


def test_sort_by_date_puts_missing_first_ascending(store):
    items, _ = store.query_filtered(FilterSpec(sort_by="first_email_sent"))
    assert _names(items)[0] == "Dormant Trigger"


def test_paging_slices_after_sorting(store):
    page1, total = store.query_filtered(FilterSpec(page_size=3, page_number=1))
    page3, _ = store.query_filtered(FilterSpec(page_size=3, page_number=3))
    assert total == 8
    assert len(page1) == 3
    assert len(page3) == 2
    assert not set(_names(page1)) & set(_names(page3))


def test_page_past_the_end_is_empty(store):
    items, total = store.query_filtered(FilterSpec(page_size=50, page_number=5))
    assert items == []
    assert total == 8


def test_summary_totals(store):
    s = store.query_summary()
    assert s.total_emails == 1500 + 2800 + 5200 + 920 + 650 + 1100 + 300
    assert s.first_email_sent == NOW - timedelta(days=30)


def test_lookup_exact_case_insensitive(store):
    assert store.query_by_strategy_name("abandoned cart").strategy_name == "Abandoned Cart"
    assert store.query_by_strategy_name("Abandoned") is None


def test_strategy_names_sorted(store):
    names = store.query_strategy_names()
    assert len(names) == 8
    assert names == sorted(names, key=str.lower)


def test_list_reports_offset(store):
    assert len(store.list_reports(page_size=5)) == 5
    assert len(store.list_reports(page_size=5, offset=5)) == 3
