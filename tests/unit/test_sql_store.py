"""
Unit tests -- SQL store query builders (no database needed).
"""
from datetime import datetime

import pytest

from src.nlq.filters import FilterSpec
from src.triggers.sql_store import PostgresTriggerReportStore, build_order_by, build_where


def test_empty_filter_has_no_where():
    where, params = build_where(FilterSpec())
    assert where == ""
    assert params == {}


def test_strategy_name_ilike_with_wildcards():
    where, params = build_where(FilterSpec(strategy_name="Welcome"))
    assert "strategy_name ILIKE :strategy_name" in where
    assert params["strategy_name"] == "%Welcome%"


def test_strategy_name_like_metacharacters_escaped():
    _, params = build_where(FilterSpec(strategy_name="50%_off"))
    assert params["strategy_name"] == "%50\\%\\_off%"


def test_count_bounds_are_inclusive_and_bound():
    where, params = build_where(FilterSpec(min_opened_count=500, max_bounced_count=0))
    assert "opened_count >= :min_opened_count" in where
    assert "bounced_count <= :max_bounced_count" in where
    assert params == {"min_opened_count": 500, "max_bounced_count": 0}


def test_rate_bound_uses_zero_safe_ratio():
    where, params = build_where(FilterSpec(min_click_rate_percentage=10))
    assert "CASE WHEN delivered_count > 0" in where
    assert "clicked_count * 100.0 / delivered_count" in where
    assert params["min_click_rate_percentage"] == 10.0


def test_date_bounds():
    spec = FilterSpec(first_email_sent_from=datetime(2024, 11, 1), first_email_sent_to=datetime(2024, 11, 30))
    where, params = build_where(spec)
    assert "first_email_sent >= :first_email_sent_from" in where
    assert "first_email_sent <= :first_email_sent_to" in where
    assert params["first_email_sent_to"] == datetime(2024, 11, 30)


def test_clauses_joined_with_and():
    where, _ = build_where(FilterSpec(strategy_name="a", min_total_emails=1))
    assert where.startswith(" WHERE ")
    assert " AND " in where


def test_values_never_inlined():
    where, _ = build_where(FilterSpec(strategy_name="x'; DROP TABLE t; --"))
    assert "DROP" not in where


def test_default_order():
    assert build_order_by(FilterSpec()) == " ORDER BY LOWER(strategy_name) ASC"


def test_order_with_tiebreak():
    order = build_order_by(FilterSpec(sort_by="clicked_count", sort_direction="desc"))
    assert order == " ORDER BY clicked_count DESC, LOWER(strategy_name) ASC"


def test_order_by_rate_expression():
    order = build_order_by(FilterSpec(sort_by="open_rate", sort_direction="desc"))
    assert "opened_count * 100.0 / delivered_count" in order
    assert "DESC" in order


def test_unknown_sort_falls_back_to_name():
    spec = FilterSpec.model_construct(sort_by="revenue; DROP", sort_direction="asc")
    assert build_order_by(spec) == " ORDER BY LOWER(strategy_name) ASC"


def test_invalid_table_name_rejected():
    with pytest.raises(ValueError, match="Invalid trigger table"):
        PostgresTriggerReportStore(table="reports; DROP TABLE x")


def test_schema_qualified_table_accepted():
    store = PostgresTriggerReportStore(table="reporting.email_trigger_reports")
    assert store.table == "reporting.email_trigger_reports"
