"""
Request-scoped result types of the natural-language pipeline.

ExtractionResult -- outcome of turning free text into a FilterSpec
PaginatedResponse -- one page of trigger reports plus page metadata
DebugBundle / QueryResponse -- output of the filter-driven query surface
IntentDebugInfo / IntentQueryResponse -- output of the intent-driven surface
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.nlq.filters import FilterSpec
from src.triggers.models import TriggerReport


class ExtractionResult(BaseModel):
    """Immutable once returned to the orchestrator."""

    model_config = ConfigDict(frozen=True)

    success: bool
    filters: FilterSpec = Field(default_factory=FilterSpec)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    explanation: str = ""
    raw_response: str = ""
    error: str | None = None
    extracted_parameters: list[str] = Field(default_factory=list)
    failed_parameters: list[str] = Field(default_factory=list)
    json_parsing_successful: bool = False
    parsed_json: dict[str, Any] | None = None
    system_prompt: str = ""
    user_prompt: str = ""
    llm_time_ms: int = 0
    processing_time_ms: int = 0


class PaginatedResponse(BaseModel):
    items: list[TriggerReport] = Field(default_factory=list)
    total_count: int = 0
    page_number: int = 1
    page_size: int = 50
    total_pages: int = 0
    has_next_page: bool = False
    has_previous_page: bool = False

    @classmethod
    def create(cls, items: list[TriggerReport], total_count: int,
               page_number: int, page_size: int) -> "PaginatedResponse":
        total_pages = math.ceil(total_count / page_size) if page_size > 0 else 0
        return cls(
            items=list(items),
            total_count=total_count,
            page_number=page_number,
            page_size=page_size,
            total_pages=total_pages,
            has_next_page=page_number < total_pages,
            has_previous_page=page_number > 1,
        )


class DebugBundle(BaseModel):
    """Diagnostics attached only when the caller asks for them."""

    raw_llm_response: str = ""
    system_prompt: str = ""
    user_prompt: str = ""
    llm_processing_time_ms: int = 0
    filter_parsing_time_ms: int = 0
    database_query_time_ms: int = 0
    json_parsing_successful: bool = False
    json_parsing_error: str | None = None
    parsed_llm_json: dict[str, Any] | None = None
    confidence_score: float | None = None
    extracted_filter_fields: list[str] = Field(default_factory=list)
    failed_filter_fields: list[str] = Field(default_factory=list)
    generated_sql_parameters: dict[str, Any] = Field(default_factory=dict)
    total_records_after_filtering: int | None = None
    required_fallback: bool = False
    processing_errors: list[str] = Field(default_factory=list)
    debug_messages: list[str] = Field(default_factory=list)


class QueryResponse(BaseModel):
    original_query: str
    results: PaginatedResponse
    applied_filters: FilterSpec
    filter_extraction_successful: bool
    filter_summary: str = ""
    has_warnings: bool = False
    warnings: list[str] = Field(default_factory=list)
    debug_info: DebugBundle | None = None
    processed_at: datetime = Field(default_factory=datetime.utcnow)
    processing_time_ms: int = 0


class IntentDebugInfo(BaseModel):
    raw_llm_response: str = ""
    prompt: str = ""
    intent: str = ""
    mapping_kind: str = ""
    service_method: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)
    applied_filters: FilterSpec | None = None
    llm_processing_time_ms: int = 0
    database_query_time_ms: int = 0
    warnings: list[str] = Field(default_factory=list)


class IntentQueryResponse(BaseModel):
    original_query: str
    success: bool = True
    intent: str = ""
    generated_sql: str | None = None
    explanation: str | None = None
    trigger_reports: list[TriggerReport] | None = None
    summary: TriggerReport | None = None
    available_strategies: list[str] | None = None
    total_count: int | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    debug_info: IntentDebugInfo | None = None
    processed_at: datetime = Field(default_factory=datetime.utcnow)
    processing_time_ms: int = 0
