"""
Natural-language query service -- orchestrates extract -> paginate -> execute -> assemble.

Two surfaces:
  handle_query      -- free text -> FilterSpec -> one page of trigger reports
  run_intent_query  -- free text -> intent label -> one store operation

Language-understanding problems never fail a request; they come back as
warnings on a normal response.  A trigger-store failure is fatal and raises
``QueryExecutionError`` carrying the elapsed time.
"""
from __future__ import annotations

import time

from src.nlq.extractor import extract_filters
from src.nlq.filters import generated_parameters
from src.nlq.intent import MappingOutcome, build_intent_prompt, map_intent, parse_intent_response
from src.nlq.llm_client import LLMCallable, generate
from src.nlq.models import (
    DebugBundle,
    IntentDebugInfo,
    IntentQueryResponse,
    PaginatedResponse,
    QueryResponse,
)
from src.triggers.models import TriggerReport
from src.triggers.store import TriggerReportStore, TriggerStoreError, get_trigger_store
from src.core.config import get_settings
from src.core.logging import get_logger, shorten
from src.core.utils import elapsed_ms, timer

logger = get_logger(__name__)


class QueryValidationError(ValueError):
    """The request itself is unusable (empty or oversized query text)."""


class QueryExecutionError(RuntimeError):
    """The trigger-report store failed; the request cannot be answered."""

    def __init__(self, message: str, processing_time_ms: int = 0):
        super().__init__(message)
        self.message = message
        self.processing_time_ms = processing_time_ms


def _check_query(query: str) -> str:
    text = (query or "").strip()
    if not text:
        raise QueryValidationError("Query cannot be empty")
    limit = get_settings().max_query_length
    if len(text) > limit:
        raise QueryValidationError(f"Query exceeds the maximum length of {limit} characters")
    return text


def _clamp_paging(page_number: int | None, page_size: int | None) -> tuple[int, int, list[str]]:
    settings = get_settings()
    warnings: list[str] = []
    number = page_number if page_number is not None else 1
    size = page_size if page_size is not None else settings.default_page_size
    if number < 1:
        warnings.append(f"Page number {number} is below 1; using 1")
        number = 1
    if size < 1:
        warnings.append(f"Page size {size} is below 1; using 1")
        size = 1
    elif size > settings.max_page_size:
        warnings.append(f"Page size {size} exceeds {settings.max_page_size}; using {settings.max_page_size}")
        size = settings.max_page_size
    return number, size, warnings


# ── Filter-driven surface ────────────────────────────────

def handle_query(
    query: str,
    page_number: int | None = 1,
    page_size: int | None = None,
    include_debug: bool = False,
    store: TriggerReportStore | None = None,
    llm: LLMCallable | None = None,
    context: str | None = None,
) -> QueryResponse:
    """End-to-end: question -> one page of matching trigger reports.

    Raises
    ------
    QueryValidationError
        Empty or oversized query text (nothing is called).
    QueryExecutionError
        The trigger-report store failed.
    """
    t0 = time.perf_counter()
    text = _check_query(query)
    store = store or get_trigger_store()
    warnings: list[str] = []
    debug_messages: list[str] = []
    logger.info("NL query | %s | page=%s size=%s debug=%s",
                shorten(text), page_number, page_size, include_debug)

    # 1. Extract
    extraction = extract_filters(text, context=context, llm=llm)
    if not extraction.success:
        warnings.append(f"Could not interpret the query, showing unfiltered results: {extraction.error}")
    elif extraction.failed_parameters:
        warnings.append("Ignored invalid filter values: " + ", ".join(extraction.failed_parameters))
    debug_messages.append(
        f"Extraction success={extraction.success} confidence={extraction.confidence:.2f}"
    )

    # 2. Paginate
    number, size, paging_warnings = _clamp_paging(page_number, page_size)
    warnings.extend(paging_warnings)
    filters = extraction.filters.model_copy(update={"page_number": number, "page_size": size})
    debug_messages.append(f"Paging page={number} size={size}")

    # 3. Execute
    with timer() as t_db:
        try:
            items, total = store.query_filtered(filters)
        except TriggerStoreError as exc:
            logger.exception("Trigger-report query failed for: %s", shorten(text))
            raise QueryExecutionError(str(exc), elapsed_ms(t0)) from exc
    debug_messages.append(f"Store returned {len(items)} of {total} in {t_db['elapsed_ms']} ms")

    # 4. Assemble
    results = PaginatedResponse.create(items, total, number, size)
    debug = None
    if include_debug:
        debug = DebugBundle(
            raw_llm_response=extraction.raw_response,
            system_prompt=extraction.system_prompt,
            user_prompt=extraction.user_prompt,
            llm_processing_time_ms=extraction.llm_time_ms,
            filter_parsing_time_ms=max(0, extraction.processing_time_ms - extraction.llm_time_ms),
            database_query_time_ms=t_db["elapsed_ms"],
            json_parsing_successful=extraction.json_parsing_successful,
            json_parsing_error=None if extraction.success else extraction.error,
            parsed_llm_json=extraction.parsed_json,
            confidence_score=extraction.confidence,
            extracted_filter_fields=list(extraction.extracted_parameters),
            failed_filter_fields=list(extraction.failed_parameters),
            generated_sql_parameters=generated_parameters(filters),
            total_records_after_filtering=total,
            required_fallback=not extraction.success,
            processing_errors=[extraction.error] if extraction.error else [],
            debug_messages=debug_messages,
        )

    response = QueryResponse(
        original_query=text,
        results=results,
        applied_filters=filters,
        filter_extraction_successful=extraction.success,
        filter_summary=extraction.explanation,
        has_warnings=bool(warnings),
        warnings=warnings,
        debug_info=debug,
        processing_time_ms=elapsed_ms(t0),
    )
    logger.info("NL query done | %d/%d rows | %d warning(s) | %d ms",
                len(items), total, len(warnings), response.processing_time_ms)
    return response


# ── Intent-driven surface ────────────────────────────────

def run_intent_query(
    query: str,
    context: str | None = None,
    include_debug: bool = False,
    store: TriggerReportStore | None = None,
    llm: LLMCallable | None = None,
) -> IntentQueryResponse:
    """Classify *query* into an intent and run the matching store operation.

    A backend failure falls back to the overall summary with ``success=False``.
    """
    t0 = time.perf_counter()
    text = _check_query(query)
    store = store or get_trigger_store()
    llm = llm or generate
    logger.info("Intent query | %s", shorten(text))

    system_prompt, user_prompt = build_intent_prompt(text, context)
    reply = llm(user_prompt, context=system_prompt)

    try:
        with timer() as t_db:
            if not reply.ok:
                error = f"Language backend {reply.failure}: {reply.error}"
                logger.warning("Intent extraction failed, returning summary: %s", error)
                response = IntentQueryResponse(
                    original_query=text,
                    success=False,
                    intent="summary",
                    explanation="Overall summary across all strategies",
                    summary=store.query_summary(),
                    error=error,
                )
                outcome = None
                generated = None
            else:
                generated = parse_intent_response(reply.text)
                outcome = map_intent(generated.intent, generated.parameters, text, generated.generated_sql)
                response = IntentQueryResponse(
                    original_query=text,
                    intent=generated.intent or "summary",
                    generated_sql=generated.generated_sql,
                    explanation=outcome.explanation,
                    parameters=dict(generated.parameters),
                    warnings=list(outcome.warnings),
                )
                _execute_outcome(outcome, response, store)
    except TriggerStoreError as exc:
        logger.exception("Trigger-report query failed for intent query: %s", shorten(text))
        raise QueryExecutionError(str(exc), elapsed_ms(t0)) from exc

    if include_debug:
        response.debug_info = IntentDebugInfo(
            raw_llm_response=reply.text,
            prompt=f"{system_prompt}\n\n{user_prompt}",
            intent=generated.intent if generated else "",
            mapping_kind=outcome.kind if outcome else "summary",
            service_method=outcome.service_method if outcome else "query_summary",
            parameters=dict(generated.parameters) if generated else {},
            applied_filters=outcome.filters if outcome else None,
            llm_processing_time_ms=reply.elapsed_ms,
            database_query_time_ms=t_db["elapsed_ms"],
            warnings=list(response.warnings),
        )
    response.processing_time_ms = elapsed_ms(t0)
    logger.info("Intent query done | intent=%s | %d ms", response.intent, response.processing_time_ms)
    return response


def _execute_outcome(outcome: MappingOutcome, response: IntentQueryResponse, store: TriggerReportStore) -> None:
    """Run the store call chosen by the mapper and fill *response* in place."""
    if outcome.kind == "filtered":
        items, total = store.query_filtered(outcome.filters)
        response.trigger_reports = items
        response.total_count = total
    elif outcome.kind == "lookup":
        report: TriggerReport | None = store.query_by_strategy_name(outcome.strategy_name)
        if report is not None:
            response.trigger_reports = [report]
            response.total_count = 1
        else:
            response.warnings.append(
                f"Strategy '{outcome.strategy_name}' was not found; showing the overall summary"
            )
            response.summary = store.query_summary()
            response.available_strategies = store.query_strategy_names()
    elif outcome.kind == "list":
        items = store.list_reports(page_size=get_settings().default_page_size)
        response.trigger_reports = items
        response.total_count = len(items)
    elif outcome.kind == "strategies":
        names = store.query_strategy_names()
        response.available_strategies = names
        response.total_count = len(names)
    else:
        response.summary = store.query_summary()
