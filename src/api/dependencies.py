"""
FastAPI dependencies -- the trigger-report store and the language backend.

Tests swap these out with ``app.dependency_overrides``.
"""
from __future__ import annotations

from src.nlq.llm_client import LLMCallable, generate
from src.triggers.store import TriggerReportStore, get_trigger_store


def get_store() -> TriggerReportStore:
    return get_trigger_store()


def get_llm() -> LLMCallable:
    return generate
