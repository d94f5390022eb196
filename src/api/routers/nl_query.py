"""POST /nl/query, POST /nl/intent, GET /nl/examples, GET /nl/status -- natural-language endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from src.api.dependencies import get_llm, get_store
from src.nlq.catalog import load_query_catalog
from src.nlq.llm_client import LLMCallable, backend_status
from src.nlq.models import IntentQueryResponse, QueryResponse
from src.nlq.service import (
    QueryExecutionError,
    QueryValidationError,
    handle_query,
    run_intent_query,
)
from src.triggers.store import TriggerReportStore
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


def _check_query_length(value: str) -> str:
    limit = get_settings().max_query_length
    if len(value) > limit:
        raise ValueError(f"Query exceeds maximum length of {limit} characters")
    return value


class NLQueryRequest(BaseModel):
    query: str = Field(..., min_length=1, description="Natural-language question about trigger reports")
    page_number: int = Field(1, ge=1)
    page_size: int = Field(default_factory=lambda: get_settings().default_page_size, ge=1)
    include_debug_info: bool = Field(False, description="Attach prompts, raw backend output and timings")
    context: str | None = Field(None, max_length=2000, description="Extra instructions for the language backend")

    @field_validator("query")
    @classmethod
    def _query_length(cls, value: str) -> str:
        return _check_query_length(value)

    @field_validator("page_size")
    @classmethod
    def _page_size_limit(cls, value: int) -> int:
        limit = get_settings().max_page_size
        if value > limit:
            raise ValueError(f"Page size must be between 1 and {limit}")
        return value


class IntentRequest(BaseModel):
    query: str = Field(..., min_length=1)
    context: str | None = Field(None, max_length=2000)
    include_debug_info: bool = False

    @field_validator("query")
    @classmethod
    def _query_length(cls, value: str) -> str:
        return _check_query_length(value)


class ExamplesResponse(BaseModel):
    categories: dict[str, list[str]]
    queries: list[str]


def _fatal(exc: QueryExecutionError) -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={"error": exc.message, "processing_time_ms": exc.processing_time_ms},
    )


@router.post("/query", response_model=QueryResponse)
def nl_query_endpoint(
    req: NLQueryRequest,
    store: TriggerReportStore = Depends(get_store),
    llm: LLMCallable = Depends(get_llm),
):
    """Question -> extracted filters -> one page of trigger reports."""
    try:
        return handle_query(
            req.query,
            page_number=req.page_number,
            page_size=req.page_size,
            include_debug=req.include_debug_info,
            store=store,
            llm=llm,
            context=req.context,
        )
    except QueryValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except QueryExecutionError as exc:
        raise _fatal(exc)
    except Exception as exc:
        logger.exception("NL query failed")
        raise HTTPException(status_code=500, detail={"error": str(exc), "processing_time_ms": 0})


@router.post("/intent", response_model=IntentQueryResponse)
def nl_intent_endpoint(
    req: IntentRequest,
    store: TriggerReportStore = Depends(get_store),
    llm: LLMCallable = Depends(get_llm),
):
    """Question -> intent -> summary, lookup, listing or threshold query."""
    try:
        return run_intent_query(
            req.query,
            context=req.context,
            include_debug=req.include_debug_info,
            store=store,
            llm=llm,
        )
    except QueryValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except QueryExecutionError as exc:
        raise _fatal(exc)
    except Exception as exc:
        logger.exception("Intent query failed")
        raise HTTPException(status_code=500, detail={"error": str(exc), "processing_time_ms": 0})


@router.get("/examples", response_model=ExamplesResponse)
def examples_endpoint() -> ExamplesResponse:
    """Example questions grouped by category."""
    catalog = load_query_catalog()
    return ExamplesResponse(
        categories=catalog.examples_by_category(),
        queries=catalog.all_example_queries(),
    )


@router.get("/status")
def status_endpoint() -> dict:
    """Language-backend configuration and availability (no call is made)."""
    return backend_status()
