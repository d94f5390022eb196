"""
Unit tests -- query service: both surfaces end-to-end on the mock backend
and the in-memory store.
"""
from datetime import datetime
from functools import partial

import pytest

from src.nlq.filters import is_unconstrained
from src.nlq.llm_client import LLMResponse, generate
from src.nlq.models import IntentQueryResponse, QueryResponse
from src.nlq.service import (
    QueryExecutionError,
    QueryValidationError,
    handle_query,
    run_intent_query,
)
from src.triggers.memory_store import InMemoryTriggerReportStore, sample_reports
from src.triggers.store import TriggerStoreError

NOW = datetime(2025, 6, 30, 12, 0, 0)
mock_llm = partial(generate, provider="mock")


@pytest.fixture()
def store() -> InMemoryTriggerReportStore:
    return InMemoryTriggerReportStore(sample_reports(now=NOW))


class BrokenStore(InMemoryTriggerReportStore):
    def query_filtered(self, spec):
        raise TriggerStoreError("connection refused")

    def query_summary(self):
        raise TriggerStoreError("connection refused")


def _reply(text: str):
    return lambda prompt, context=None, **kw: LLMResponse(text=text, provider="fake")


def _timeout(prompt, context=None, **kw):
    return LLMResponse(failure="timeout", error="Language backend timed out after 30s", provider="fake")


# ── Filter-driven surface ────────────────────────────────

def test_returns_query_response(store):
    result = handle_query("strategies with more than 500 clicks", store=store, llm=mock_llm)
    assert isinstance(result, QueryResponse)
    assert result.original_query == "strategies with more than 500 clicks"


def test_filters_applied(store):
    result = handle_query("strategies with more than 500 clicks", store=store, llm=mock_llm)
    assert result.filter_extraction_successful is True
    assert result.applied_filters.min_clicked_count == 500
    assert [r.strategy_name for r in result.results.items] == ["Promotional Campaign"]
    assert result.results.total_count == 1
    assert result.filter_summary == "Showing strategies where clicks at least 500"
    assert result.warnings == []
    assert result.has_warnings is False


def test_backend_timeout_degrades_to_unfiltered(store):
    result = handle_query("strategies with more than 500 clicks", store=store, llm=_timeout)
    assert result.filter_extraction_successful is False
    assert result.has_warnings is True
    assert result.warnings[0].startswith("Could not interpret the query")
    assert "timeout" in result.warnings[0]
    assert is_unconstrained(result.applied_filters)
    assert result.results.total_count == 8


def test_malformed_backend_output_degrades(store):
    result = handle_query("anything", store=store, llm=_reply("no json here"))
    assert result.filter_extraction_successful is False
    assert result.results.total_count == 8


def test_dropped_fields_reported(store):
    llm = _reply('{"filters": {"revenue": 5, "min_opened_count": 1000}}')
    result = handle_query("revenue and opens", store=store, llm=llm)
    assert result.filter_extraction_successful is True
    assert result.warnings == ["Ignored invalid filter values: revenue"]
    assert result.results.total_count == 2


def test_paging_passed_through(store):
    result = handle_query("show all strategies", page_number=2, page_size=3, store=store, llm=mock_llm)
    assert result.applied_filters.page_number == 2
    assert result.applied_filters.page_size == 3
    assert len(result.results.items) == 3
    assert result.results.total_pages == 3
    assert result.results.has_previous_page is True


def test_default_page_size(store):
    result = handle_query("show all strategies", page_size=None, store=store, llm=mock_llm)
    assert result.applied_filters.page_size == 50


def test_paging_clamped_with_warnings(store):
    result = handle_query("show all strategies", page_number=0, page_size=5000, store=store, llm=mock_llm)
    assert result.applied_filters.page_number == 1
    assert result.applied_filters.page_size == 1000
    assert len(result.warnings) == 2


def test_debug_bundle(store):
    result = handle_query("strategies with more than 500 clicks", include_debug=True, store=store, llm=mock_llm)
    debug = result.debug_info
    assert debug is not None
    assert debug.json_parsing_successful is True
    assert debug.confidence_score == 1.0
    assert debug.extracted_filter_fields == ["min_clicked_count"]
    assert debug.generated_sql_parameters["min_clicked_count"] == 500
    assert debug.total_records_after_filtering == 1
    assert debug.required_fallback is False
    assert "User Query:" in debug.user_prompt
    assert debug.debug_messages


def test_debug_bundle_records_fallback(store):
    result = handle_query("anything", include_debug=True, store=store, llm=_timeout)
    assert result.debug_info.required_fallback is True
    assert result.debug_info.processing_errors


def test_no_debug_by_default(store):
    result = handle_query("anything", store=store, llm=mock_llm)
    assert result.debug_info is None


def test_empty_query_rejected(store):
    def boom(*args, **kwargs):
        raise AssertionError("backend must not be called")

    with pytest.raises(QueryValidationError, match="empty"):
        handle_query("   ", store=store, llm=boom)


def test_oversized_query_rejected(store):
    with pytest.raises(QueryValidationError, match="maximum length"):
        handle_query("x" * 1001, store=store, llm=mock_llm)


def test_store_failure_is_fatal():
    with pytest.raises(QueryExecutionError) as exc_info:
        handle_query("anything", store=BrokenStore(), llm=mock_llm)
    assert "connection refused" in exc_info.value.message
    assert exc_info.value.processing_time_ms >= 0


def test_processing_time_tracked(store):
    result = handle_query("anything", store=store, llm=mock_llm)
    assert result.processing_time_ms >= 0


# ── Intent-driven surface ────────────────────────────────

def test_intent_click_rate(store):
    result = run_intent_query("strategies with click rate over 10%", store=store, llm=mock_llm)
    assert isinstance(result, IntentQueryResponse)
    assert result.success is True
    assert result.intent == "filtered_click"
    assert result.total_count == 5
    assert result.trigger_reports[0].strategy_name == "Promotional Campaign"
    assert result.generated_sql.startswith("SELECT")


def test_intent_open_count(store):
    result = run_intent_query("campaigns with more than 500 opens", store=store, llm=mock_llm)
    assert result.intent == "filtered_open"
    assert result.total_count == 3
    assert result.trigger_reports[0].strategy_name == "Newsletter Monthly"


def test_intent_lookup(store):
    result = run_intent_query("Show the 'Welcome Series' strategy", store=store, llm=mock_llm)
    assert result.intent == "strategy"
    assert [r.strategy_name for r in result.trigger_reports] == ["Welcome Series"]
    assert result.total_count == 1


def test_intent_lookup_not_found(store):
    result = run_intent_query("How is the strategy named Ghost Campaign doing?", store=store, llm=mock_llm)
    assert result.trigger_reports is None
    assert result.summary is not None
    assert len(result.available_strategies) == 8
    assert "Ghost Campaign" in result.warnings[0]


def test_intent_strategy_names(store):
    result = run_intent_query("List all strategies", store=store, llm=mock_llm)
    assert result.available_strategies == store.query_strategy_names()
    assert result.total_count == 8


def test_intent_campaigns_lists_reports(store):
    result = run_intent_query("Show all campaigns", store=store, llm=mock_llm)
    assert result.intent == "campaigns"
    assert len(result.trigger_reports) == 8


def test_intent_summary(store):
    result = run_intent_query("Give me an overall summary", store=store, llm=mock_llm)
    assert result.intent == "summary"
    assert result.summary.total_emails == 12470


def test_intent_backend_failure_returns_summary(store):
    result = run_intent_query("anything", store=store, llm=_timeout)
    assert result.success is False
    assert result.error == "Language backend timeout: Language backend timed out after 30s"
    assert result.summary is not None
    assert result.intent == "summary"


def test_intent_unknown_label_warns(store):
    result = run_intent_query("is it sunny", store=store, llm=_reply("INTENT: weather\nPARAMETERS: {}"))
    assert result.success is True
    assert result.summary is not None
    assert result.warnings == ["Unrecognised intent 'weather'; showing the overall summary"]


def test_intent_debug(store):
    result = run_intent_query("strategies with click rate over 10%", include_debug=True, store=store, llm=mock_llm)
    debug = result.debug_info
    assert debug.mapping_kind == "filtered"
    assert debug.service_method == "query_filtered"
    assert debug.applied_filters.min_click_rate_percentage == 10
    assert debug.raw_llm_response.startswith("INTENT:")


def test_intent_store_failure_is_fatal():
    with pytest.raises(QueryExecutionError):
        run_intent_query("Give me an overall summary", store=BrokenStore(), llm=mock_llm)


def test_intent_empty_query_rejected(store):
    with pytest.raises(QueryValidationError):
        run_intent_query("", store=store, llm=mock_llm)
