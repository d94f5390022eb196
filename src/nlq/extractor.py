"""
Filter extraction -- turns a free-text question into a FilterSpec.

Flow:
  1. Build the instruction prompt (schema, rules, few-shot examples)
  2. Call the language backend with the user query
  3. Strip markdown fences, locate the JSON object, decode it
  4. Validate every returned field on its own; bad fields are dropped and
     reported, never fatal
  5. Drop inverted min/max pairs as a whole
  6. Rebuild the explanation from what survived
"""
from __future__ import annotations

import json
import re
import time
from typing import Any

from src.nlq.catalog import load_query_catalog
from src.nlq.explainer import describe_filters
from src.nlq.filters import (
    FIELD_KINDS,
    SORT_FIELDS,
    FilterSpec,
    constrained_fields,
    inverted_ranges,
    normalize_field_name,
    normalize_sort_field,
)
from src.nlq.llm_client import LLMCallable, generate
from src.nlq.models import ExtractionResult
from src.nlq.params import as_datetime, as_float, as_int, as_text
from src.core.logging import get_logger, shorten
from src.core.utils import elapsed_ms

logger = get_logger(__name__)

USER_QUERY_LABEL = "User Query:"
FILTER_ANSWER_LABEL = "Extracted Filters (JSON):"

_META_KEYS = {"explanation", "confidence", "extracted_parameters"}

_KIND_DESCRIPTIONS: dict[str, str] = {
    "text": "string (partial, case-insensitive match)",
    "datetime": "ISO-8601 datetime",
    "count": "integer >= 0",
    "rate": "number, percentage on a 0-100 scale",
    "sort_field": "string, one of: " + ", ".join(SORT_FIELDS),
    "sort_direction": 'string, "asc" or "desc"',
}

# ── Prompt ───────────────────────────────────────────────

_SYSTEM_PROMPT = """\
You are a filter extraction system for email trigger reporting. Read the user's \
question about email strategies and extract filter parameters for a trigger-report query.

AVAILABLE FILTER PARAMETERS:
{fields}

EXTRACTION RULES:
1. Extract only filters the question actually asks for; omit everything else
2. Percentages use a 0-100 scale ("10%" -> 10.0)
3. "rate" or "%" in the question means a *_rate_percentage field; plain numbers of \
clicks/opens/bounces/deliveries mean the matching *_count field
4. Resolve relative dates ("last month", "this year") to absolute ISO-8601 datetimes; today is {today}
5. Never include page_number or page_size; paging is chosen by the caller
6. Return ONLY a JSON object, no markdown

RESPONSE FORMAT:
{{
  "filters": {{"strategy_name": "Welcome", "min_open_rate_percentage": 5.0}},
  "explanation": "Strategies containing 'Welcome' with open rate of at least 5%",
  "confidence": 0.9
}}

EXAMPLES:

{examples}"""


def build_filter_prompt(context: str | None = None) -> str:
    """System prompt for filter extraction, optionally followed by caller context."""
    fields = "\n".join(
        f"- {name}: {_KIND_DESCRIPTIONS[kind]}"
        for name, kind in FIELD_KINDS.items()
        if kind != "pagination"
    )
    examples = "\n\n".join(e.render() for e in load_query_catalog().filter_examples)
    prompt = _SYSTEM_PROMPT.format(
        fields=fields,
        examples=examples,
        today=time.strftime("%Y-%m-%d"),
    )
    if context and context.strip():
        prompt += f"\n\nADDITIONAL CONTEXT:\n{context.strip()}"
    return prompt


def build_user_prompt(query: str) -> str:
    return f"{USER_QUERY_LABEL} {query.strip()}\n\n{FILTER_ANSWER_LABEL}"


# ── Parsing ──────────────────────────────────────────────

def strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    return text


def _extract_json(text: str) -> dict[str, Any]:
    """Decode the outermost JSON object in *text*.

    Raises ``ValueError`` with a diagnostic when nothing usable is found.
    """
    text = strip_fences(text)
    start, end = text.find("{"), text.rfind("}")
    candidate = text[start:end + 1] if start != -1 and end > start else text
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in language backend response: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid JSON in language backend response: expected an object, got {type(data).__name__}"
        )
    return data


def _filter_object(data: dict[str, Any]) -> dict[str, Any]:
    if "filters" in data:
        inner = data["filters"]
        if inner is None:
            return {}
        if isinstance(inner, dict):
            return inner
        raise ValueError("Invalid JSON in language backend response: 'filters' is not an object")
    return {k: v for k, v in data.items() if normalize_field_name(k) not in _META_KEYS}


def _convert(kind: str, value: Any, upper_bound: bool = False) -> Any:
    """Return the typed value for a field of *kind*, or None when invalid."""
    if kind == "text":
        return as_text(value)
    if kind == "datetime":
        return as_datetime(value, end_of_day=upper_bound)
    if kind == "count":
        n = as_int(value)
        return n if n is not None and n >= 0 else None
    if kind == "rate":
        f = as_float(value)
        return f if f is not None and 0.0 <= f <= 100.0 else None
    if kind == "sort_field":
        text = as_text(value)
        return normalize_sort_field(text) if text else None
    if kind == "sort_direction":
        text = (as_text(value) or "").lower()
        if text in ("asc", "ascending"):
            return "asc"
        if text in ("desc", "descending"):
            return "desc"
    return None


def _validate_fields(raw: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Split *raw* into accepted typed values and the names that were dropped."""
    accepted: dict[str, Any] = {}
    failed: list[str] = []

    for key, value in raw.items():
        name = normalize_field_name(str(key))
        kind = FIELD_KINDS.get(name)
        if kind == "pagination" or value is None:
            continue
        if kind is None:
            failed.append(name)
            continue
        typed = _convert(kind, value, upper_bound=name.endswith("_to"))
        if typed is None:
            failed.append(name)
            continue
        accepted[name] = typed

    for low, high in inverted_ranges(accepted):
        del accepted[low], accepted[high]
        failed.extend([low, high])

    return accepted, failed


def _confidence(accepted: int, failed: int) -> float:
    if failed == 0:
        return 1.0
    if accepted == 0:
        return 0.0
    return round(accepted / (accepted + failed), 4)


# ── Public API ───────────────────────────────────────────

def extract_filters(
    query: str,
    context: str | None = None,
    llm: LLMCallable | None = None,
) -> ExtractionResult:
    """Translate *query* into an ``ExtractionResult``.

    Never raises for backend or parsing problems; those come back as
    ``success=False`` with ``error`` set and an empty filter.
    """
    start = time.perf_counter()
    if not query or not query.strip():
        return ExtractionResult(success=False, error="Query cannot be empty",
                                explanation=describe_filters(FilterSpec()))

    llm = llm or generate
    system_prompt = build_filter_prompt(context)
    user_prompt = build_user_prompt(query)
    prompts = {"system_prompt": system_prompt, "user_prompt": user_prompt}

    logger.info("Extracting filters for: %s", shorten(query))
    response = llm(user_prompt, context=system_prompt)

    def _failed(error: str, **extra: Any) -> ExtractionResult:
        logger.warning("Filter extraction failed: %s", error)
        return ExtractionResult(
            success=False,
            error=error,
            confidence=0.0,
            explanation=describe_filters(FilterSpec()),
            raw_response=response.text,
            llm_time_ms=response.elapsed_ms,
            processing_time_ms=elapsed_ms(start),
            **prompts,
            **extra,
        )

    if not response.ok:
        return _failed(f"Language backend {response.failure}: {response.error}")

    try:
        data = _extract_json(response.text)
        raw_filters = _filter_object(data)
    except ValueError as exc:
        return _failed(str(exc))

    accepted, failed = _validate_fields(raw_filters)
    spec = FilterSpec(**accepted)
    confidence = _confidence(len(accepted), len(failed))
    if failed:
        logger.warning("Dropped invalid filter fields: %s", ", ".join(failed))

    result = ExtractionResult(
        success=True,
        filters=spec,
        confidence=confidence,
        explanation=describe_filters(spec),
        raw_response=response.text,
        extracted_parameters=constrained_fields(spec),
        failed_parameters=failed,
        json_parsing_successful=True,
        parsed_json=data,
        llm_time_ms=response.elapsed_ms,
        processing_time_ms=elapsed_ms(start),
        **prompts,
    )
    logger.info("Extracted %d filter(s)  confidence=%.2f  in %d ms",
                len(result.extracted_parameters), confidence, result.processing_time_ms)
    return result
