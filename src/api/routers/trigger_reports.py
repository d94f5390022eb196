"""
GET /trigger-reports ... -- direct (non-NL) reporting endpoints.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.api.dependencies import get_store
from src.nlq.filters import FIELD_KINDS, FilterSpec
from src.nlq.models import PaginatedResponse
from src.nlq.params import as_datetime, as_float, as_int, as_text
from src.triggers.models import TriggerReport
from src.triggers.store import TriggerReportStore, TriggerStoreError
from src.triggers.validator import validate_filter
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()

_CONVERTERS = {
    "text": as_text,
    "count": as_int,
    "rate": as_float,
    "sort_field": as_text,
    "sort_direction": lambda v: (as_text(v) or "").lower() or None,
    "pagination": as_int,
}


def _store_error(exc: TriggerStoreError) -> HTTPException:
    logger.exception("Trigger-report store failed")
    return HTTPException(status_code=500, detail={"error": str(exc)})


def _parse_filter_params(raw: dict[str, str]) -> tuple[dict[str, Any], list[str]]:
    """Typed FilterSpec values from query-string text, plus conversion errors."""
    values: dict[str, Any] = {}
    errors: list[str] = []
    for name, kind in FIELD_KINDS.items():
        text = raw.get(name)
        if text is None or text == "":
            continue
        if kind == "datetime":
            value = as_datetime(text, end_of_day=name.endswith("_to"))
        else:
            value = _CONVERTERS[kind](text)
        if value is None:
            errors.append(f"Invalid value for '{name}': {text!r}")
        else:
            values[name] = value
    return values, errors


@router.get("", response_model=list[TriggerReport])
def list_reports(
    page_size: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    store: TriggerReportStore = Depends(get_store),
):
    """All trigger reports, paged by offset."""
    settings = get_settings()
    if page_size is None:
        page_size = settings.default_page_size
    if page_size > settings.max_page_size:
        raise HTTPException(
            status_code=400,
            detail={"errors": [f"Page size must be between 1 and {settings.max_page_size}."]},
        )
    try:
        return store.list_reports(page_size=page_size, offset=offset)
    except TriggerStoreError as exc:
        raise _store_error(exc)


@router.get("/summary", response_model=TriggerReport)
def summary(store: TriggerReportStore = Depends(get_store)):
    """Totals across every strategy."""
    try:
        return store.query_summary()
    except TriggerStoreError as exc:
        raise _store_error(exc)


@router.get("/strategy-names", response_model=list[str])
def strategy_names(store: TriggerReportStore = Depends(get_store)):
    try:
        return store.query_strategy_names()
    except TriggerStoreError as exc:
        raise _store_error(exc)


@router.get("/filtered", response_model=PaginatedResponse)
def filtered(request: Request, store: TriggerReportStore = Depends(get_store)):
    """Structured filtering; accepts any FilterSpec field as a query parameter."""
    values, errors = _parse_filter_params(dict(request.query_params))
    values.setdefault("page_size", get_settings().default_page_size)
    errors += validate_filter(values)
    if errors:
        raise HTTPException(status_code=400, detail={"errors": errors})

    spec = FilterSpec(**values)
    try:
        items, total = store.query_filtered(spec)
    except TriggerStoreError as exc:
        raise _store_error(exc)
    return PaginatedResponse.create(items, total, spec.page_number, spec.page_size)


@router.get("/{strategy_name}", response_model=TriggerReport)
def by_strategy_name(strategy_name: str, store: TriggerReportStore = Depends(get_store)):
    try:
        report = store.query_by_strategy_name(strategy_name)
    except TriggerStoreError as exc:
        raise _store_error(exc)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Strategy '{strategy_name}' not found")
    return report
