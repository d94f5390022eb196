"""
Postgres-backed trigger-report store.

Reads the aggregated per-strategy table (``Settings.trigger_table``).  All
statements are parameterised ``text()`` queries run on a READ ONLY
connection; every SQLAlchemy failure is re-raised as ``TriggerStoreError``.
"""
from __future__ import annotations

import re
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.nlq.filters import FilterSpec, COUNT_METRICS, RATE_METRICS, SORT_FIELDS, DEFAULT_SORT_BY
from src.triggers.connection import readonly_connection
from src.triggers.models import TriggerReport, SUMMARY_STRATEGY_NAME
from src.triggers.store import TriggerStoreError
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "strategy_name, total_emails, delivered_count, bounced_count, opened_count, "
    "clicked_count, complained_count, unsubscribed_count, first_email_sent, last_email_sent"
)


def _ratio(numerator: str, denominator: str) -> str:
    return (
        f"(CASE WHEN {denominator} > 0 "
        f"THEN {numerator} * 100.0 / {denominator} ELSE 0 END)"
    )


# Rate metric / sort key -> SQL expression
_RATE_EXPR: dict[str, str] = {
    "click_rate_percentage": _ratio("clicked_count", "delivered_count"),
    "open_rate_percentage": _ratio("opened_count", "delivered_count"),
    "delivery_rate_percentage": _ratio("delivered_count", "total_emails"),
    "bounce_rate_percentage": _ratio("bounced_count", "total_emails"),
}

_SORT_EXPR: dict[str, str] = {key: key for key in SORT_FIELDS}
_SORT_EXPR.update({
    "click_rate": _RATE_EXPR["click_rate_percentage"],
    "open_rate": _RATE_EXPR["open_rate_percentage"],
    "delivery_rate": _RATE_EXPR["delivery_rate_percentage"],
    "bounce_rate": _RATE_EXPR["bounce_rate_percentage"],
    "strategy_name": "LOWER(strategy_name)",
})

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def build_where(spec: FilterSpec) -> tuple[str, dict[str, Any]]:
    """Return ``(where_sql, params)`` for every constraint set on *spec*."""
    clauses: list[str] = []
    params: dict[str, Any] = {}

    if spec.strategy_name:
        escaped = re.sub(r"([\\%_])", r"\\\1", spec.strategy_name)
        clauses.append("strategy_name ILIKE :strategy_name")
        params["strategy_name"] = f"%{escaped}%"
    if spec.first_email_sent_from is not None:
        clauses.append("first_email_sent >= :first_email_sent_from")
        params["first_email_sent_from"] = spec.first_email_sent_from
    if spec.first_email_sent_to is not None:
        clauses.append("first_email_sent <= :first_email_sent_to")
        params["first_email_sent_to"] = spec.first_email_sent_to

    expressions = {m: m for m in COUNT_METRICS}
    expressions.update(_RATE_EXPR)
    for metric in COUNT_METRICS + RATE_METRICS:
        expr = expressions[metric]
        low, high = f"min_{metric}", f"max_{metric}"
        if getattr(spec, low) is not None:
            clauses.append(f"{expr} >= :{low}")
            params[low] = getattr(spec, low)
        if getattr(spec, high) is not None:
            clauses.append(f"{expr} <= :{high}")
            params[high] = getattr(spec, high)

    where = " WHERE " + " AND ".join(clauses) if clauses else ""
    return where, params


def build_order_by(spec: FilterSpec) -> str:
    """Whitelisted ORDER BY with a strategy-name tiebreak."""
    key = spec.sort_by if spec.sort_by in _SORT_EXPR else DEFAULT_SORT_BY
    direction = "DESC" if spec.sort_direction == "desc" else "ASC"
    order = f" ORDER BY {_SORT_EXPR[key]} {direction}"
    if key != "strategy_name":
        order += ", LOWER(strategy_name) ASC"
    return order


def _to_report(data: Any) -> TriggerReport:
    data = dict(data)
    for key in ("total_emails", "delivered_count", "bounced_count", "opened_count",
                "clicked_count", "complained_count", "unsubscribed_count"):
        data[key] = int(data.get(key) or 0)
    return TriggerReport(**data)


class PostgresTriggerReportStore:
    """Trigger-report store reading from Postgres."""

    def __init__(self, table: str | None = None):
        table = table or get_settings().trigger_table
        if not _TABLE_RE.match(table):
            raise ValueError(f"Invalid trigger table name: {table!r}")
        self.table = table

    def _fetch(self, sql: str, params: dict[str, Any] | None = None) -> list[Any]:
        try:
            with readonly_connection() as conn:
                return list(conn.execute(text(sql), params or {}).fetchall())
        except SQLAlchemyError as exc:
            logger.exception("Trigger-report query failed")
            raise TriggerStoreError(f"Trigger-report query failed: {exc}") from exc

    def query_filtered(self, spec: FilterSpec) -> tuple[list[TriggerReport], int]:
        where, params = build_where(spec)
        count_sql = f"SELECT COUNT(*) FROM {self.table}{where}"
        page_sql = (
            f"SELECT {_COLUMNS} FROM {self.table}{where}{build_order_by(spec)}"
            " LIMIT :limit OFFSET :offset"
        )
        page_params = dict(params, limit=spec.page_size, offset=(spec.page_number - 1) * spec.page_size)

        total = int(self._fetch(count_sql, params)[0][0])
        rows = self._fetch(page_sql, page_params)
        logger.info("SQL store: %d matched, returning %d  (%d constraints)",
                    total, len(rows), len(params))
        return [_to_report(r._mapping) for r in rows], total

    def query_summary(self) -> TriggerReport:
        sql = f"""
            SELECT
                COALESCE(SUM(total_emails), 0)       AS total_emails,
                COALESCE(SUM(delivered_count), 0)    AS delivered_count,
                COALESCE(SUM(bounced_count), 0)      AS bounced_count,
                COALESCE(SUM(opened_count), 0)       AS opened_count,
                COALESCE(SUM(clicked_count), 0)      AS clicked_count,
                COALESCE(SUM(complained_count), 0)   AS complained_count,
                COALESCE(SUM(unsubscribed_count), 0) AS unsubscribed_count,
                MIN(first_email_sent)                AS first_email_sent,
                MAX(last_email_sent)                 AS last_email_sent
            FROM {self.table}
        """
        row = self._fetch(sql)[0]
        data = dict(row._mapping)
        data["strategy_name"] = SUMMARY_STRATEGY_NAME
        return _to_report(data)

    def query_by_strategy_name(self, name: str) -> TriggerReport | None:
        sql = (
            f"SELECT {_COLUMNS} FROM {self.table}"
            " WHERE LOWER(strategy_name) = LOWER(:name) LIMIT 1"
        )
        rows = self._fetch(sql, {"name": name.strip()})
        return _to_report(rows[0]._mapping) if rows else None

    def query_strategy_names(self) -> list[str]:
        sql = f"SELECT DISTINCT strategy_name FROM {self.table} ORDER BY strategy_name"
        return [r[0] for r in self._fetch(sql)]

    def list_reports(self, page_size: int = 50, offset: int = 0) -> list[TriggerReport]:
        sql = (
            f"SELECT {_COLUMNS} FROM {self.table}"
            " ORDER BY LOWER(strategy_name) LIMIT :limit OFFSET :offset"
        )
        rows = self._fetch(sql, {"limit": page_size, "offset": offset})
        return [_to_report(r._mapping) for r in rows]
