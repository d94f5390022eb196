"""
Rule-based stand-in for a language model.

Used by the ``mock`` provider so the whole pipeline runs offline and
deterministically.  It recognises the two prompt shapes the service sends:

  filter extraction  -> JSON ``{"filters": {...}, "explanation": ..., "confidence": ...}``
  intent extraction  -> labelled ``INTENT / PARAMETERS / SQL / EXPLANATION`` lines

Any other prompt gets an empty answer, which the client reports as an error.
"""
from __future__ import annotations

import json
import re
from calendar import monthrange
from datetime import date, timedelta
from typing import Any

from src.nlq.extractor import FILTER_ANSWER_LABEL, USER_QUERY_LABEL
from src.nlq.intent import INTENT_ANSWER_LABEL
from src.core.logging import get_logger

logger = get_logger(__name__)

_QUERY_RE = re.compile(r"User Query:\s*(.*?)\s*(?:\n\s*\n|$)", re.DOTALL)

# ── Keyword maps ─────────────────────────────────────────

# keyword stem -> (count field, rate field or None)
_METRIC_STEMS: dict[str, tuple[str, str | None]] = {
    "click":   ("clicked_count", "click_rate_percentage"),
    "open":    ("opened_count", "open_rate_percentage"),
    "deliver": ("delivered_count", "delivery_rate_percentage"),
    "bounce":  ("bounced_count", "bounce_rate_percentage"),
    "email":   ("total_emails", None),
    "sent":    ("total_emails", None),
    "send":    ("total_emails", None),
}

_SORT_KEYS: dict[str, tuple[str, str]] = {
    "click":   ("clicked_count", "click_rate"),
    "open":    ("opened_count", "open_rate"),
    "deliver": ("delivered_count", "delivery_rate"),
    "bounce":  ("bounced_count", "bounce_rate"),
    "email":   ("total_emails", "total_emails"),
}

_GREATER = ("more than", "greater than", "above", "over", "at least", "exceeding", "higher than", ">=", ">")
_LESS = ("less than", "fewer than", "below", "under", "at most", "lower than", "<=", "<")

_COMPARATOR = "|".join(re.escape(c) for c in _GREATER + _LESS)
_THRESHOLD_RE = re.compile(
    rf"(?P<cmp>{_COMPARATOR})\s*(?P<num>\d[\d,]*(?:\.\d+)?)\s*(?P<pct>%|percent(?:age)?)?"
)
_STEM_RE = re.compile(r"(click|open|deliver|bounce|email|sent|send)\w*")

_QUOTED_RE = re.compile(r"(?:^|(?<=\s))[\"“']([^\"”']{2,})[\"”'](?=$|[\s.,?!])")
_RATE_AFTER_RE = re.compile(r"\s*(?:rates?|percent)")
_RATE_WORD_RE = re.compile(r"rates?\b|percent|%")
_NAMED_RE = re.compile(
    r"\b(?:named|called|strategy|trigger)\s+(?:the\s+)?([A-Z][\w\-]*(?:\s+[A-Z][\w\-]*)*)"
)

_MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}
_MONTH_RE = re.compile(r"\b(?:in|from|during)\s+(" + "|".join(_MONTHS) + r")\b")
_RANGE_RE = re.compile(r"last\s+(\d+)\s+(day|week|month|year)s?")


# ── Shared helpers ───────────────────────────────────────

def _user_query(prompt: str) -> str:
    m = _QUERY_RE.search(prompt)
    return m.group(1).strip() if m else prompt.strip()


def _strategy_name(query: str) -> str | None:
    m = _QUOTED_RE.search(query)
    if m:
        return m.group(1).strip()
    m = _NAMED_RE.search(query)
    if m:
        return m.group(1).strip()
    return None


def _find_thresholds(q: str) -> list[dict[str, Any]]:
    """Every ``<comparator> <number>`` in *q* with the metric it applies to."""
    found: list[dict[str, Any]] = []
    for m in _THRESHOLD_RE.finditer(q):
        after = _STEM_RE.search(q, m.end(), min(len(q), m.end() + 25))
        before = [s for s in _STEM_RE.finditer(q, max(0, m.start() - 40), m.start())]
        stem_match = after or (before[-1] if before else None)
        if stem_match is None:
            continue
        stem = stem_match.group(1)
        is_rate = bool(m.group("pct")) or bool(_RATE_AFTER_RE.match(q, stem_match.end()))
        found.append({
            "stem": stem,
            "threshold": float(m.group("num").replace(",", "")),
            "is_greater": m.group("cmp") in _GREATER,
            "is_rate": is_rate,
        })
    return found


def _time_range(q: str, today: date) -> tuple[date, date] | None:
    if "this month" in q:
        return today.replace(day=1), today
    if "this year" in q or "year to date" in q or "ytd" in q:
        return today.replace(month=1, day=1), today
    if "last month" in q:
        first_this = today.replace(day=1)
        last_prev = first_this - timedelta(days=1)
        return last_prev.replace(day=1), last_prev
    if "last year" in q:
        return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)

    m = _RANGE_RE.search(q)
    if m:
        n, unit = int(m.group(1)), m.group(2)
        if unit == "day":
            return today - timedelta(days=n), today
        if unit == "week":
            return today - timedelta(weeks=n), today
        if unit == "month":
            month, year = today.month - n, today.year
            while month <= 0:
                month += 12
                year -= 1
            return today.replace(year=year, month=month, day=1), today
        return date(today.year - n, 1, 1), today

    m = _MONTH_RE.search(q)
    if m:
        month = _MONTHS[m.group(1)]
        year = today.year if month <= today.month else today.year - 1
        return date(year, month, 1), date(year, month, monthrange(year, month)[1])
    return None


# ── Filter extraction ────────────────────────────────────

def _respond_filters(query: str, today: date | None = None) -> str:
    today = today or date.today()
    q = query.lower()
    filters: dict[str, Any] = {}
    notes: list[str] = []

    for t in _find_thresholds(q):
        count_field, rate_field = _METRIC_STEMS[t["stem"]]
        field = rate_field if t["is_rate"] and rate_field else count_field
        bound = "min" if t["is_greater"] else "max"
        value: Any = t["threshold"] if field.endswith("_percentage") else int(t["threshold"])
        filters[f"{bound}_{field}"] = value
        notes.append(f"{bound} {field} {value}")

    name = _strategy_name(query)
    if name:
        filters["strategy_name"] = name
        notes.append(f"strategy '{name}'")

    window = _time_range(q, today)
    if window:
        filters["first_email_sent_from"] = f"{window[0].isoformat()}T00:00:00Z"
        filters["first_email_sent_to"] = f"{window[1].isoformat()}T23:59:59Z"
        notes.append(f"first sent {window[0]}..{window[1]}")

    direction = None
    if re.search(r"\b(top|best|highest)\b|(?<!at )\bmost\b", q):
        direction = "desc"
    elif re.search(r"\b(worst|lowest|bottom)\b|(?<!at )\bleast\b", q):
        direction = "asc"
    if direction:
        stem = next((s for s in _SORT_KEYS if s in q), "email")
        count_key, rate_key = _SORT_KEYS[stem]
        filters["sort_by"] = rate_key if _RATE_WORD_RE.search(q) else count_key
        filters["sort_direction"] = direction
        notes.append(f"sorted by {filters['sort_by']} {direction}")

    body = {
        "filters": filters,
        "explanation": "Rule-based extraction: " + ("; ".join(notes) if notes else "no filters"),
        "confidence": 0.9 if filters else 0.5,
    }
    return json.dumps(body, indent=2)


# ── Intent extraction ────────────────────────────────────

_INTENT_THRESHOLD_RE = re.compile(
    rf"(?P<m1>click|open|deliver|bounce)\w*.*?(?P<c1>{_COMPARATOR})\s*(?P<n1>\d[\d,]*)"
    rf"|(?P<c2>{_COMPARATOR})\s*(?P<n2>\d[\d,]*)\s*%?\s*(?:\w+\s+){{0,2}}?(?P<m2>click|open|deliver|bounce)"
)

_SQL_COLUMNS = {"click": "clicked_count", "open": "opened_count",
                "deliver": "delivered_count", "bounce": "bounced_count"}


def _format_intent(intent: str, params: dict[str, Any], sql: str, explanation: str) -> str:
    return (
        f"INTENT: {intent}\n"
        f"PARAMETERS: {json.dumps(params)}\n"
        f"SQL: {sql}\n"
        f"EXPLANATION: {explanation}"
    )


def _respond_intent(query: str) -> str:
    q = query.lower()
    name = _strategy_name(query)

    m = _INTENT_THRESHOLD_RE.search(q)
    if m:
        metric = m.group("m1") or m.group("m2")
        cmp = m.group("c1") or m.group("c2")
        threshold = int((m.group("n1") or m.group("n2")).replace(",", ""))
        is_greater = cmp in _GREATER
        op = ">" if is_greater else "<"
        params = {"metricType": metric, "threshold": threshold,
                  "isGreater": is_greater, "strategyName": name}
        return _format_intent(
            f"filtered_{metric}", params,
            f"SELECT * FROM email_trigger_reports WHERE {_SQL_COLUMNS[metric]} {op} {threshold}",
            f"Strategies with {metric} {'above' if is_greater else 'below'} {threshold}",
        )

    if name:
        return _format_intent(
            "strategy", {"strategyName": name},
            f"SELECT * FROM email_trigger_reports WHERE strategy_name = '{name}'",
            f"Metrics for the {name} strategy",
        )
    if re.search(r"\b(list|all|which|names?)\b.*\b(strateg\w*|triggers?)\b", q):
        return _format_intent(
            "strategy", {"strategyName": None},
            "SELECT DISTINCT strategy_name FROM email_trigger_reports",
            "Lists the available strategies",
        )
    if "campaign" in q:
        return _format_intent(
            "campaigns", {"strategyName": None},
            "SELECT * FROM email_trigger_reports ORDER BY strategy_name",
            "Per-strategy campaign reports",
        )
    if re.search(r"\b(metrics?|performance|rates?)\b", q):
        return _format_intent(
            "metrics", {"strategyName": None},
            "SELECT SUM(total_emails), SUM(delivered_count) FROM email_trigger_reports",
            "Overall delivery and engagement metrics",
        )
    return _format_intent(
        "summary", {"strategyName": None},
        "SELECT SUM(total_emails) FROM email_trigger_reports",
        "Summary across all strategies",
    )


# ── Entry point ──────────────────────────────────────────

def respond(prompt: str, system: str | None = None) -> str:
    """Answer *prompt* the way a well-behaved model would."""
    stripped = prompt.rstrip()
    if stripped.endswith(FILTER_ANSWER_LABEL):
        return _respond_filters(_user_query(prompt))
    if stripped.endswith(INTENT_ANSWER_LABEL) and USER_QUERY_LABEL in prompt:
        return _respond_intent(_user_query(prompt))
    return ""
