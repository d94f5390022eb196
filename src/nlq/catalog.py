"""
Loads and caches the query catalog YAML.

The catalog holds:
  - example queries grouped by category  (served by ``/nl/examples``)
  - few-shot examples for filter extraction prompts
  - few-shot examples for intent prompts
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

_CATALOG_PATH = Path(__file__).resolve().parents[2] / "catalog" / "query_catalog.yml"


# ── Typed catalog objects ────────────────────────────────

@dataclass(frozen=True)
class ExampleGroup:
    category: str
    description: str
    queries: tuple[str, ...] = ()


@dataclass(frozen=True)
class FilterExample:
    query: str
    filters: dict[str, Any] = field(default_factory=dict)
    explanation: str = ""

    def render(self) -> str:
        body = json.dumps({"filters": self.filters, "explanation": self.explanation}, indent=2)
        return f'Query: "{self.query}"\n{body}'


@dataclass(frozen=True)
class IntentExample:
    query: str
    intent: str
    parameters: dict[str, Any] = field(default_factory=dict)
    sql: str = ""
    explanation: str = ""

    def render(self) -> str:
        return (
            f'Query: "{self.query}"\n'
            f"INTENT: {self.intent}\n"
            f"PARAMETERS: {json.dumps(self.parameters)}\n"
            f"SQL: {self.sql}\n"
            f"EXPLANATION: {self.explanation}"
        )


@dataclass(frozen=True)
class QueryCatalog:
    version: int
    example_groups: tuple[ExampleGroup, ...]
    filter_examples: tuple[FilterExample, ...]
    intent_examples: tuple[IntentExample, ...]

    def examples_by_category(self) -> dict[str, list[str]]:
        return {g.category: list(g.queries) for g in self.example_groups}

    def all_example_queries(self) -> list[str]:
        return [q for g in self.example_groups for q in g.queries]


# ── Parsing ──────────────────────────────────────────────

def _parse_catalog(raw: dict[str, Any]) -> QueryCatalog:
    groups = tuple(
        ExampleGroup(
            category=g["category"],
            description=g.get("description", ""),
            queries=tuple(g.get("queries") or ()),
        )
        for g in raw.get("example_queries", [])
    )
    filter_examples = tuple(
        FilterExample(
            query=e["query"],
            filters=dict(e.get("filters") or {}),
            explanation=e.get("explanation", ""),
        )
        for e in raw.get("filter_examples", [])
    )
    intent_examples = tuple(
        IntentExample(
            query=e["query"],
            intent=e["intent"],
            parameters=dict(e.get("parameters") or {}),
            sql=e.get("sql", ""),
            explanation=e.get("explanation", ""),
        )
        for e in raw.get("intent_examples", [])
    )
    return QueryCatalog(
        version=raw.get("version", 1),
        example_groups=groups,
        filter_examples=filter_examples,
        intent_examples=intent_examples,
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_query_catalog(path: str | None = None) -> QueryCatalog:
    """Load and cache the query catalog from YAML."""
    with open(path or _CATALOG_PATH) as f:
        raw = yaml.safe_load(f) or {}
    return _parse_catalog(raw)
