"""
Unit tests -- validator: every structured-filter check.
"""
from src.nlq.filters import FilterSpec
from src.triggers.validator import validate_filter


# ── Valid filters → no errors ────────────────────────────

def test_default_spec_valid():
    assert validate_filter(FilterSpec()) == []


def test_empty_dict_valid():
    assert validate_filter({}) == []


def test_full_valid_dict():
    values = {
        "strategy_name": "Welcome",
        "min_clicked_count": 10,
        "max_clicked_count": 100,
        "min_open_rate_percentage": 0,
        "max_open_rate_percentage": 100,
        "sort_by": "open_rate",
        "sort_direction": "desc",
        "page_number": 2,
        "page_size": 1000,
    }
    assert validate_filter(values) == []


# ── Paging ───────────────────────────────────────────────

def test_page_number_zero():
    errors = validate_filter({"page_number": 0})
    assert errors == ["Page number must be greater than 0."]


def test_page_size_too_large():
    errors = validate_filter({"page_size": 1001})
    assert errors == ["Page size must be between 1 and 1000."]


def test_custom_max_page_size():
    errors = validate_filter({"page_size": 200}, max_page_size=100)
    assert "Page size must be between 1 and 100." in errors


# ── Sorting ──────────────────────────────────────────────

def test_unknown_sort_field():
    errors = validate_filter({"sort_by": "revenue"})
    assert len(errors) == 1
    assert "Unknown sort field 'revenue'" in errors[0]


def test_bad_sort_direction():
    errors = validate_filter({"sort_direction": "sideways"})
    assert errors == ["Sort direction must be 'asc' or 'desc', got 'sideways'."]


# ── Bounds ───────────────────────────────────────────────

def test_rate_out_of_range():
    errors = validate_filter({"min_click_rate_percentage": 150.0})
    assert errors == ["'min_click_rate_percentage' must be between 0 and 100."]


def test_negative_count():
    errors = validate_filter({"min_total_emails": -5})
    assert errors == ["'min_total_emails' must not be negative."]


def test_inverted_count_pair():
    errors = validate_filter({"min_opened_count": 500, "max_opened_count": 100})
    assert errors == ["'min_opened_count' cannot be greater than 'max_opened_count'."]


def test_inverted_date_pair():
    spec = FilterSpec(first_email_sent_from="2024-12-01T00:00:00", first_email_sent_to="2024-11-01T00:00:00")
    errors = validate_filter(spec)
    assert errors == ["'first_email_sent_from' cannot be greater than 'first_email_sent_to'."]


def test_all_problems_reported_together():
    errors = validate_filter({
        "page_number": 0,
        "sort_by": "nope",
        "max_bounce_rate_percentage": -1,
        "min_clicked_count": 9,
        "max_clicked_count": 1,
    })
    assert len(errors) == 4
