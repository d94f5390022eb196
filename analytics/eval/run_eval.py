"""
Evaluation harness -- runs eval_questions.jsonl through the filter extractor
and the intent mapper and generates analytics/reports/eval_report.md.

Checks:
  - Filter correctness  (extracted non-default fields match expected, exactly)
  - Intent correctness  (backend intent label matches expected)
  - Mapping correctness (mapped store operation matches expected)
  - Execution           (rows returned from the in-memory sample store)
  - Latency             (end-to-end ms)

An expected filter value of "*" only checks that the field was set
(used for relative dates).
"""
from __future__ import annotations

import json
import sys
import datetime
from pathlib import Path
from typing import Any

EVAL_PATH = Path(__file__).resolve().parent / "eval_questions.jsonl"
REPORT_PATH = Path(__file__).resolve().parents[1] / "reports" / "eval_report.md"


def _load_questions() -> list[dict[str, Any]]:
    lines = EVAL_PATH.read_text().splitlines()
    return [json.loads(line) for line in lines if line.strip()]


def _filters_match(actual: dict[str, Any], expected: dict[str, Any]) -> bool:
    if set(actual) != set(expected):
        return False
    for key, want in expected.items():
        if want == "*":
            continue
        got = actual[key]
        if isinstance(want, (int, float)) and isinstance(got, (int, float)):
            if abs(float(got) - float(want)) > 1e-9:
                return False
        elif got != want:
            return False
    return True


def _run_one(q: dict[str, Any], provider: str) -> dict[str, Any]:
    """Run a single question through both natural-language surfaces."""
    from functools import partial

    from src.nlq.filters import constrained_fields
    from src.nlq.llm_client import generate
    from src.nlq.service import handle_query, run_intent_query
    from src.triggers.memory_store import InMemoryTriggerReportStore

    question = q["question"]
    llm = partial(generate, provider=provider)
    store = InMemoryTriggerReportStore()

    try:
        response = handle_query(question, page_size=50, include_debug=True, store=store, llm=llm)
        intent_response = run_intent_query(question, include_debug=True, store=store, llm=llm)
    except Exception as exc:
        return {
            "question": question,
            "error": str(exc),
            "latency_ms": 0,
            "filters_ok": False,
            "intent_ok": False,
            "kind_ok": False,
            "rows_returned": 0,
            "success": False,
            "extracted": {},
        }

    dumped = response.applied_filters.model_dump(mode="json")
    extracted = {name: dumped[name] for name in constrained_fields(response.applied_filters)}

    filters_ok = _filters_match(extracted, q.get("expected_filters", {}))
    intent_ok = intent_response.intent == q.get("expected_intent", intent_response.intent)
    debug = intent_response.debug_info
    kind = debug.mapping_kind if debug else ""
    kind_ok = kind == q.get("expected_kind", kind)
    rows_returned = response.results.total_count

    return {
        "question": question,
        "error": None,
        "latency_ms": response.processing_time_ms + intent_response.processing_time_ms,
        "filters_ok": filters_ok,
        "intent_ok": intent_ok,
        "kind_ok": kind_ok,
        "rows_returned": rows_returned,
        "success": filters_ok and intent_ok and kind_ok,
        "extracted": extracted,
        "intent": intent_response.intent,
        "kind": kind,
        "warnings": response.warnings + intent_response.warnings,
    }


def _rate(n: int, total: int) -> float:
    return (n / total * 100) if total else 0


def _generate_report(results: list[dict[str, Any]], questions: list[dict[str, Any]], provider: str) -> str:
    """Generate the Markdown eval report."""
    total = len(results)
    now = datetime.datetime.now().strftime("%Y-%m-%d %H:%M")

    successes = sum(1 for r in results if r["success"])
    filters_ok = sum(1 for r in results if r["filters_ok"])
    intents_ok = sum(1 for r in results if r["intent_ok"])
    kinds_ok = sum(1 for r in results if r["kind_ok"])
    with_rows = sum(1 for r in results if r["rows_returned"])

    latencies = sorted(r["latency_ms"] for r in results)
    avg_lat = sum(latencies) / len(latencies) if latencies else 0
    p50_lat = latencies[len(latencies) // 2] if latencies else 0
    p95_lat = latencies[min(int(len(latencies) * 0.95), len(latencies) - 1)] if latencies else 0

    lines: list[str] = []
    lines.append("# Evaluation Report")
    lines.append("")
    lines.append(f"> Generated: {now}  |  Questions: **{total}**  |  Provider: `{provider}`")
    lines.append("")
    lines.append("---")
    lines.append("")
    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Overall success rate | **{_rate(successes, total):.0f}%** ({successes}/{total}) |")
    lines.append(f"| Filter correctness | **{_rate(filters_ok, total):.0f}%** ({filters_ok}/{total}) |")
    lines.append(f"| Intent correctness | **{_rate(intents_ok, total):.0f}%** ({intents_ok}/{total}) |")
    lines.append(f"| Mapping correctness | **{_rate(kinds_ok, total):.0f}%** ({kinds_ok}/{total}) |")
    lines.append(f"| Queries returning rows | **{_rate(with_rows, total):.0f}%** ({with_rows}/{total}) |")
    lines.append("")
    lines.append("## Latency")
    lines.append("")
    lines.append("| Stat | ms |")
    lines.append("|------|-----|")
    lines.append(f"| Mean | {avg_lat:.0f} |")
    lines.append(f"| p50 | {p50_lat} |")
    lines.append(f"| p95 | {p95_lat} |")
    lines.append("")
    lines.append("---")
    lines.append("")

    lines.append("## Per-Question Results")
    lines.append("")
    lines.append("| # | Question | Filters | Intent | Mapping | Rows | Latency | Pass |")
    lines.append("|---|----------|---------|--------|---------|------|---------|------|")
    for i, r in enumerate(results, 1):
        f = "OK" if r["filters_ok"] else "ERROR"
        it = "OK" if r["intent_ok"] else "ERROR"
        k = "OK" if r["kind_ok"] else "ERROR"
        rows = str(r["rows_returned"]) if r["rows_returned"] else "--"
        p = "OK" if r["success"] else "ERROR"
        qtext = r["question"][:55] + ("..." if len(r["question"]) > 55 else "")
        lines.append(f"| {i} | {qtext} | {f} | {it} | {k} | {rows} | {r['latency_ms']} | {p} |")
    lines.append("")

    failures = [(i, r, q) for i, (r, q) in enumerate(zip(results, questions), 1) if not r["success"]]
    lines.append("## Failures")
    lines.append("")
    if not failures:
        lines.append("None -- all questions handled correctly.")
        lines.append("")
    for i, r, q in failures:
        lines.append(f"### #{i}: {r['question']}")
        lines.append("")
        if r.get("error"):
            lines.append(f"**Error:** `{r['error']}`")
        lines.append(f"**Expected filters:** `{json.dumps(q.get('expected_filters', {}))}`")
        lines.append(f"**Extracted filters:** `{json.dumps(r.get('extracted', {}))}`")
        if not r["intent_ok"] or not r["kind_ok"]:
            lines.append(f"**Intent:** `{r.get('intent')}` -> `{r.get('kind')}` "
                         f"(expected `{q.get('expected_intent')}` -> `{q.get('expected_kind')}`)")
        lines.append("")

    return "\n".join(lines)


def run(provider: str = "mock"):
    # Ensure UTF-8 output on Windows (cp1252 can't handle emoji)
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")  # type: ignore[attr-defined]

    questions = _load_questions()
    print(f"Loaded {len(questions)} eval questions.")
    print(f"Running evaluation (provider={provider})...\n")

    results = []
    for i, q in enumerate(questions, 1):
        r = _run_one(q, provider)
        status = "PASS" if r["success"] else "FAIL"
        print(f"  [{i:2d}/{len(questions)}] {status}  {r['question'][:60]:<60}  {r['latency_ms']:>4d}ms  rows={r['rows_returned']}")
        results.append(r)

    report = _generate_report(results, questions, provider)

    REPORT_PATH.parent.mkdir(parents=True, exist_ok=True)
    REPORT_PATH.write_text(report, encoding="utf-8")
    print(f"\nReport written to {REPORT_PATH}")

    total = len(results)
    successes = sum(1 for r in results if r["success"])
    print(f"\n{'='*50}")
    print(f"  Success: {successes}/{total} ({_rate(successes, total):.0f}%)")
    print(f"{'='*50}")


if __name__ == "__main__":
    run(sys.argv[1] if len(sys.argv) > 1 else "mock")
