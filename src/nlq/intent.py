"""
Intent mapping -- the coarse-grained query surface.

The language backend labels a question with an intent (``summary``,
``strategy``, ``filtered_click`` ...) plus loosely-typed parameters.  This
module builds that prompt, parses the reply, and maps it onto one store
operation.  Mapping never raises: anything it cannot use degrades to the
next more general handling, and the last resort is the overall summary.
"""
from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Literal

from src.nlq.catalog import load_query_catalog
from src.nlq.extractor import USER_QUERY_LABEL, strip_fences
from src.nlq.filters import FilterSpec, normalize_field_name
from src.nlq.params import Params, as_bool, as_float, as_text, clean_params
from src.core.logging import get_logger

logger = get_logger(__name__)

INTENT_ANSWER_LABEL = "Response:"

MappingKind = Literal["filtered", "lookup", "list", "strategies", "summary"]

# Words in the original question that switch a threshold to a rate bound.
# "rate" must end a word so "strategies" does not count, but "clickrate" does.
_RATE_WORDS_RE = re.compile(r"rates?\b|percent|%")

# metric stem -> (count field, rate metric, label)
_METRICS: dict[str, tuple[str, str, str]] = {
    "click":   ("clicked_count", "click_rate_percentage", "click"),
    "open":    ("opened_count", "open_rate_percentage", "open"),
    "deliver": ("delivered_count", "delivery_rate_percentage", "delivery"),
    "bounce":  ("bounced_count", "bounce_rate_percentage", "bounce"),
}

_SUMMARY_INTENTS = {"summary", "metrics", "overview", "performance"}
_LIST_INTENTS = {"campaigns", "campaign", "reports", "list"}
_STRATEGY_INTENTS = {"strategy", "strategies", "strategy_lookup", "strategy_names"}

_SQL_NAME_RE = re.compile(
    r"strategy_?name\W*\s*(?:=|I?LIKE)\s*N?'([^']+)'",
    re.IGNORECASE,
)


# ── Prompt ───────────────────────────────────────────────

_INTENT_PROMPT = """\
You are an assistant for an email trigger reporting system. Classify the user's \
question and answer in exactly this format:

INTENT: <summary | metrics | campaigns | strategy | filtered_click | filtered_open | filtered_deliver | filtered_bounce>
PARAMETERS: <JSON object>
SQL: <one illustrative SELECT against email_trigger_reports>
EXPLANATION: <one sentence>

RULES:
1. PARAMETERS must always contain "strategyName" (null when the question names no strategy)
2. For threshold questions use filtered_<metric> with "metricType", "threshold" (number) \
and "isGreater" (true for more/above/over, false for less/below/under)
3. Use "strategy" when the question is about one named strategy or asks which strategies exist
4. Use "summary" for overall totals and anything you cannot classify

EXAMPLES:

{examples}"""


def build_intent_prompt(query: str, context: str | None = None) -> tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` for intent classification."""
    examples = "\n\n".join(e.render() for e in load_query_catalog().intent_examples)
    system = _INTENT_PROMPT.format(examples=examples)
    if context and context.strip():
        system += f"\n\nADDITIONAL CONTEXT:\n{context.strip()}"
    user = f"{USER_QUERY_LABEL} {query.strip()}\n\n{INTENT_ANSWER_LABEL}"
    return system, user


# ── Parsing ──────────────────────────────────────────────

@dataclass(frozen=True)
class GeneratedIntent:
    intent: str
    parameters: Params = field(default_factory=dict)
    generated_sql: str | None = None
    explanation: str | None = None
    raw_response: str = ""


def _section(text: str, label: str) -> str | None:
    m = re.search(
        rf"^\s*{label}:\s*(.*?)(?=^\s*(?:INTENT|PARAMETERS|SQL|EXPLANATION):|\Z)",
        text,
        re.MULTILINE | re.DOTALL | re.IGNORECASE,
    )
    if not m:
        return None
    value = m.group(1).strip()
    return value or None


def _decode_params(text: str | None) -> Params:
    if not text:
        return {}
    text = strip_fences(text)
    try:
        return clean_params(json.loads(text))
    except json.JSONDecodeError:
        logger.warning("Unparseable PARAMETERS section, using none: %s", text[:80])
        return {}


def parse_intent_response(text: str) -> GeneratedIntent:
    """Parse the labelled (or JSON) reply of the backend."""
    body = strip_fences(text or "")
    if body.startswith("{"):
        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return GeneratedIntent(
                intent=str(data.get("intent") or "").strip().lower(),
                parameters=clean_params(data.get("parameters")),
                generated_sql=as_text(data.get("sql") or data.get("generatedSql")),
                explanation=as_text(data.get("explanation")),
                raw_response=text,
            )

    intent = _section(body, "INTENT") or ""
    return GeneratedIntent(
        intent=intent.split()[0].strip().lower() if intent else "",
        parameters=_decode_params(_section(body, "PARAMETERS")),
        generated_sql=_section(body, "SQL"),
        explanation=_section(body, "EXPLANATION"),
        raw_response=text,
    )


# ── Mapping ──────────────────────────────────────────────

@dataclass
class MappingOutcome:
    kind: MappingKind
    service_method: str
    explanation: str
    filters: FilterSpec | None = None
    strategy_name: str | None = None
    warnings: list[str] = field(default_factory=list)


def _param(parameters: Params, *names: str) -> Any:
    """Look a parameter up by any spelling (``isGreater``, ``is_greater`` ...)."""
    wanted = {normalize_field_name(n) for n in names}
    for key, value in parameters.items():
        if normalize_field_name(key) in wanted:
            return value
    return None


def _metric_stem(word: str) -> str | None:
    word = word.strip().lower()
    for stem in _METRICS:
        if word.startswith(stem):
            return stem
    return None


def _summary(explanation: str, warnings: list[str] | None = None) -> MappingOutcome:
    return MappingOutcome(kind="summary", service_method="query_summary",
                          explanation=explanation, warnings=warnings or [])


def _map_threshold(stem: str, parameters: Params, original_query: str) -> MappingOutcome | None:
    threshold = as_float(_param(parameters, "threshold", "value"))
    is_greater = as_bool(_param(parameters, "isGreater", "greater"))
    if threshold is None or threshold < 0 or is_greater is None:
        return None

    count_field, rate_metric, label = _METRICS[stem]
    text = original_query.lower()
    is_rate = bool(_RATE_WORDS_RE.search(text))
    bound = "min" if is_greater else "max"
    direction = "above" if is_greater else "below"

    values: dict[str, Any] = {"sort_by": count_field, "sort_direction": "desc"}
    if is_rate:
        if threshold > 100:
            return None
        values[f"{bound}_{rate_metric}"] = threshold
        explanation = f"Strategies with {label} rate {direction} {threshold:g}%"
    else:
        values[f"{bound}_{count_field}"] = math.ceil(threshold) if is_greater else math.floor(threshold)
        explanation = f"Strategies with {label} count {direction} {threshold:g}"

    name = as_text(_param(parameters, "strategyName", "strategy"))
    if name:
        values["strategy_name"] = name
        explanation += f" matching '{name}'"

    return MappingOutcome(kind="filtered", service_method="query_filtered",
                          explanation=explanation, filters=FilterSpec(**values))


def map_intent(
    intent: str,
    parameters: Params,
    original_query: str,
    generated_sql: str | None = None,
) -> MappingOutcome:
    """Map a backend intent onto one store operation."""
    label = (intent or "").strip().lower()
    warnings: list[str] = []

    m = re.match(r"filtered_(\w+)$", label)
    if m:
        stem = _metric_stem(m.group(1))
        outcome = _map_threshold(stem, parameters, original_query) if stem else None
        if outcome is not None:
            return outcome
        warnings.append(f"Could not apply a threshold for intent '{label}'; showing the overall summary")
        logger.warning("Threshold intent '%s' lacked usable parameters: %s", label, parameters)
        return _summary("Overall summary across all strategies", warnings)

    if label in _SUMMARY_INTENTS:
        return _summary("Overall summary across all strategies")

    if label in _LIST_INTENTS:
        return MappingOutcome(kind="list", service_method="list_reports",
                              explanation="Reports for every strategy")

    if label in _STRATEGY_INTENTS:
        name = as_text(_param(parameters, "strategyName", "strategy", "name"))
        if not name and generated_sql:
            sql_match = _SQL_NAME_RE.search(generated_sql)
            if sql_match:
                name = sql_match.group(1).strip("% ") or None
        if name:
            return MappingOutcome(kind="lookup", service_method="query_by_strategy_name",
                                  explanation=f"Report for strategy '{name}'", strategy_name=name)
        return MappingOutcome(kind="strategies", service_method="query_strategy_names",
                              explanation="Available strategies")

    if label:
        warnings.append(f"Unrecognised intent '{label}'; showing the overall summary")
    return _summary("Overall summary across all strategies", warnings)
