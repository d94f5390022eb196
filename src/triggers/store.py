"""
Trigger-report query interface.

The natural-language pipeline only ever talks to a ``TriggerReportStore``.
Two implementations exist:
  mock     -> ``InMemoryTriggerReportStore`` (sample data, no DB needed)
  postgres -> ``PostgresTriggerReportStore`` (SQLAlchemy, read-only)

Any backing-store failure surfaces as ``TriggerStoreError``.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Protocol, runtime_checkable

from src.nlq.filters import FilterSpec
from src.triggers.models import TriggerReport
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)


class TriggerStoreError(RuntimeError):
    """The backing trigger-report store could not answer a query."""


@runtime_checkable
class TriggerReportStore(Protocol):
    def query_filtered(self, spec: FilterSpec) -> tuple[list[TriggerReport], int]:
        """Return one page of matching reports plus the total match count."""
        ...

    def query_summary(self) -> TriggerReport:
        ...

    def query_by_strategy_name(self, name: str) -> TriggerReport | None:
        ...

    def query_strategy_names(self) -> list[str]:
        ...

    def list_reports(self, page_size: int = 50, offset: int = 0) -> list[TriggerReport]:
        ...


@lru_cache
def get_trigger_store() -> TriggerReportStore:
    """Return the configured store (cached per process)."""
    kind = get_settings().trigger_store.lower()
    if kind == "mock":
        from src.triggers.memory_store import InMemoryTriggerReportStore

        store: TriggerReportStore = InMemoryTriggerReportStore()
    elif kind == "postgres":
        from src.triggers.sql_store import PostgresTriggerReportStore

        store = PostgresTriggerReportStore()
    else:
        raise NotImplementedError(
            f"Trigger store '{kind}' is not supported.  Choose from: mock, postgres"
        )
    logger.info("Trigger-report store ready  kind=%s", kind)
    return store
