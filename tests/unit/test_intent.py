"""
Unit tests -- intent parsing and mapping (threshold disambiguation, lookups,
fallbacks).
"""
import pytest

from src.nlq.filters import FilterSpec
from src.nlq.intent import build_intent_prompt, map_intent, parse_intent_response


def _threshold(value, greater=True, **extra) -> dict:
    params = {"metricType": "click", "threshold": value, "isGreater": greater, "strategyName": None}
    params.update(extra)
    return params


# ── Prompt ───────────────────────────────────────────────

def test_prompt_shape():
    system, user = build_intent_prompt("List all strategies", context="Be brief")
    assert "INTENT:" in system
    assert "filtered_click" in system
    assert system.endswith("ADDITIONAL CONTEXT:\nBe brief")
    assert user == "User Query: List all strategies\n\nResponse:"


# ── Parsing ──────────────────────────────────────────────

def test_parse_labelled_response():
    text = (
        "INTENT: filtered_click\n"
        'PARAMETERS: {"metricType": "click", "threshold": 10, "isGreater": true, "strategyName": null}\n'
        "SQL: SELECT * FROM email_trigger_reports WHERE clicked_count > 10\n"
        "EXPLANATION: Strategies with more than 10 clicks"
    )
    parsed = parse_intent_response(text)
    assert parsed.intent == "filtered_click"
    assert parsed.parameters["threshold"] == 10
    assert parsed.parameters["isGreater"] is True
    assert parsed.generated_sql.startswith("SELECT")
    assert parsed.explanation == "Strategies with more than 10 clicks"


def test_parse_multiline_sql():
    text = "INTENT: strategy\nPARAMETERS: {}\nSQL: SELECT *\nFROM t\nWHERE strategy_name = 'A'\nEXPLANATION: x"
    parsed = parse_intent_response(text)
    assert parsed.generated_sql == "SELECT *\nFROM t\nWHERE strategy_name = 'A'"


def test_parse_json_response():
    text = '{"intent": "Summary", "parameters": {"strategyName": null}, "sql": "SELECT 1"}'
    parsed = parse_intent_response(text)
    assert parsed.intent == "summary"
    assert parsed.generated_sql == "SELECT 1"


def test_parse_garbage():
    parsed = parse_intent_response("I am not sure what you mean")
    assert parsed.intent == ""
    assert parsed.parameters == {}


def test_parse_bad_parameters_section():
    parsed = parse_intent_response("INTENT: summary\nPARAMETERS: not json")
    assert parsed.intent == "summary"
    assert parsed.parameters == {}


# ── Threshold disambiguation ─────────────────────────────

def test_rate_word_gives_rate_bound():
    outcome = map_intent("filtered_click", _threshold(10), "strategies with click rate over 10%")
    assert outcome.kind == "filtered"
    assert outcome.filters.min_click_rate_percentage == 10
    assert outcome.filters.min_clicked_count is None
    assert outcome.filters.sort_by == "clicked_count"
    assert outcome.filters.sort_direction == "desc"


def test_no_rate_word_gives_count_bound():
    outcome = map_intent("filtered_click", _threshold(10), "strategies with more than 10 clicks")
    assert outcome.filters.min_clicked_count == 10
    assert outcome.filters.min_click_rate_percentage is None


def test_percent_sign_alone_means_rate():
    outcome = map_intent("filtered_click", _threshold(10), "clicks above 10%")
    assert outcome.filters.min_click_rate_percentage == 10


def test_strategies_word_is_not_a_rate():
    outcome = map_intent("filtered_open", _threshold(500, metricType="open"), "campaigns and strategies with more than 500 opens")
    assert outcome.filters.min_opened_count == 500


@pytest.mark.parametrize("query", [
    "strategies whose clickrate exceeds 10",
    "click_rate over 10",
    "click rates above 10",
    "click percentage above 10",
])
def test_rate_word_joined_to_metric(query):
    outcome = map_intent("filtered_click", _threshold(10), query)
    assert outcome.filters.min_click_rate_percentage == 10
    assert outcome.filters.min_clicked_count is None


def test_more_than_500_opens():
    outcome = map_intent("filtered_open", _threshold(500, metricType="open"), "campaigns with more than 500 opens")
    assert outcome.kind == "filtered"
    assert outcome.service_method == "query_filtered"
    assert outcome.filters.min_opened_count == 500
    assert outcome.filters.sort_by == "opened_count"


def test_less_than_uses_max_field():
    outcome = map_intent("filtered_bounce", _threshold(20, greater=False), "fewer than 20 bounces")
    assert outcome.filters.max_bounced_count == 20
    assert outcome.filters.min_bounced_count is None
    assert "below" in outcome.explanation


def test_fractional_count_rounded_inward():
    assert map_intent("filtered_click", _threshold(10.5), "more than 10.5 clicks").filters.min_clicked_count == 11
    assert map_intent("filtered_click", _threshold(10.5, greater=False),
                      "under 10.5 clicks").filters.max_clicked_count == 10


def test_delivery_rate():
    outcome = map_intent("filtered_delivery", _threshold(95), "delivery rate above 95")
    assert outcome.filters.min_delivery_rate_percentage == 95
    assert outcome.filters.sort_by == "delivered_count"


def test_plural_metric_label():
    outcome = map_intent("filtered_clicks", _threshold(100), "more than 100 clicks")
    assert outcome.filters.min_clicked_count == 100


def test_string_parameters_coerced():
    params = {"threshold": "10", "isGreater": "true"}
    outcome = map_intent("filtered_open", params, "open rate over 10")
    assert outcome.filters.min_open_rate_percentage == 10


def test_strategy_name_narrows_threshold():
    outcome = map_intent("filtered_click", _threshold(5, strategyName="Welcome"), "Welcome click rate above 5%")
    assert outcome.filters.strategy_name == "Welcome"
    assert "Welcome" in outcome.explanation


def test_missing_threshold_falls_back_to_summary():
    outcome = map_intent("filtered_click", {"isGreater": True}, "lots of clicks")
    assert outcome.kind == "summary"
    assert outcome.warnings


def test_rate_over_100_falls_back_to_summary():
    outcome = map_intent("filtered_click", _threshold(500), "click rate above 500")
    assert outcome.kind == "summary"
    assert "Could not apply a threshold" in outcome.warnings[0]


def test_unknown_metric_falls_back():
    outcome = map_intent("filtered_revenue", _threshold(5), "revenue above 5")
    assert outcome.kind == "summary"
    assert outcome.warnings


# ── Other intents ────────────────────────────────────────

def test_summary_intents():
    for label in ("summary", "metrics", "METRICS", "overview"):
        outcome = map_intent(label, {}, "how are we doing")
        assert outcome.kind == "summary"
        assert outcome.warnings == []


def test_campaigns_lists_reports():
    outcome = map_intent("campaigns", {}, "show all campaigns")
    assert outcome.kind == "list"
    assert outcome.service_method == "list_reports"


def test_strategy_with_name():
    outcome = map_intent("strategy", {"strategyName": "Welcome Series"}, "welcome series?")
    assert outcome.kind == "lookup"
    assert outcome.strategy_name == "Welcome Series"


def test_strategy_name_from_sql():
    sql = "SELECT * FROM email_trigger_reports WHERE StrategyName = 'Abandoned Cart'"
    outcome = map_intent("strategy", {"strategyName": None}, "abandoned cart?", sql)
    assert outcome.kind == "lookup"
    assert outcome.strategy_name == "Abandoned Cart"


def test_strategy_name_from_like_sql():
    sql = "SELECT * FROM t WHERE strategy_name ILIKE '%Welcome%'"
    outcome = map_intent("strategy", {}, "welcome?", sql)
    assert outcome.strategy_name == "Welcome"


def test_strategy_without_name_lists_names():
    outcome = map_intent("strategy", {"strategyName": None}, "which strategies exist")
    assert outcome.kind == "strategies"
    assert outcome.service_method == "query_strategy_names"


def test_unknown_intent_warns():
    outcome = map_intent("weather", {}, "is it sunny")
    assert outcome.kind == "summary"
    assert outcome.warnings == ["Unrecognised intent 'weather'; showing the overall summary"]


def test_empty_intent_is_summary_without_warning():
    outcome = map_intent("", {}, "??")
    assert outcome.kind == "summary"
    assert outcome.warnings == []


def test_filters_are_valid_specs():
    outcome = map_intent("filtered_open", _threshold(20), "open rate at least 20%")
    assert isinstance(outcome.filters, FilterSpec)
    assert outcome.filters.page_number == 1
