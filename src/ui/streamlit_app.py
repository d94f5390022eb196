"""
Streamlit UI -- Trigger Report NL Query.

Features:
  - Chat-style history of questions (session state)
  - Sidebar with backend status, paging controls and debug toggle
  - Filter tab: results table, applied filters, warnings, debug panel
  - Intent tab: summary / strategy lookup / threshold answers
  - Example questions from the catalog
"""
import streamlit as st
import httpx
import pandas as pd


API_BASE = "http://localhost:8000"
_TIMEOUT = 60

_REPORT_COLUMNS = [
    "strategy_name", "total_emails", "delivered_count", "opened_count", "clicked_count",
    "bounced_count", "delivery_rate", "open_rate", "click_rate", "bounce_rate",
    "first_email_sent", "last_email_sent",
]

st.set_page_config(
    page_title="Trigger Report NL Query",
    page_icon="email",
    layout="wide",
    initial_sidebar_state="expanded",
)


if "messages" not in st.session_state:
    st.session_state.messages = []

if "status" not in st.session_state:
    st.session_state.status = None

if "examples" not in st.session_state:
    st.session_state.examples = None


def _load_status():
    """Fetch /nl/status and /nl/examples; cache in session_state."""
    try:
        st.session_state.status = httpx.get(f"{API_BASE}/nl/status", timeout=5).json()
        st.session_state.examples = httpx.get(f"{API_BASE}/nl/examples", timeout=5).json()
    except httpx.HTTPError:
        st.session_state.status = None
        st.session_state.examples = None


def _reports_frame(reports: list[dict]) -> pd.DataFrame:
    df = pd.DataFrame(reports)
    cols = [c for c in _REPORT_COLUMNS if c in df.columns]
    return df[cols] if cols else df


with st.sidebar:
    st.title("Backend")

    if st.button("Refresh", use_container_width=True) or st.session_state.status is None:
        _load_status()

    status = st.session_state.status
    if status:
        badge = "ready" if status.get("available") else "unavailable"
        st.write(f"Provider: **{status.get('provider')}** ({badge})")
        st.write(f"Model: `{status.get('model')}`")
        st.caption(status.get("detail", ""))
    else:
        st.info("API not reachable -- start the FastAPI server first.\n\n```\nuvicorn src.api.main:app --reload\n```")

    st.divider()
    st.subheader("Query options")
    surface = st.radio("Surface", ["Filters", "Intent"], horizontal=True)
    page_size = st.number_input("Page size", min_value=1, max_value=1000, value=50, step=10)
    page_number = st.number_input("Page", min_value=1, value=1, step=1)
    include_debug = st.toggle("Include debug info", value=False)


st.title("Trigger Report NL Query")
st.markdown("Ask about your email trigger strategies in plain English.")


with st.expander("Example questions", expanded=False):
    examples = (st.session_state.examples or {}).get("queries", [])
    cols = st.columns(2)
    for i, ex in enumerate(examples):
        if cols[i % 2].button(ex, key=f"ex_{i}", use_container_width=True):
            st.session_state.prefill = ex


def _render_debug(debug: dict | None):
    if not debug:
        return
    with st.expander("Debug", expanded=False):
        c1, c2, c3 = st.columns(3)
        c1.metric("LLM ms", debug.get("llm_processing_time_ms", 0))
        c2.metric("DB ms", debug.get("database_query_time_ms", 0))
        if "confidence_score" in debug:
            c3.metric("Confidence", f"{(debug.get('confidence_score') or 0):.0%}")
        if debug.get("failed_filter_fields"):
            st.warning("Dropped fields: " + ", ".join(debug["failed_filter_fields"]))
        st.write("**Raw backend response**")
        st.code(debug.get("raw_llm_response", ""), language="json")
        st.write("**Parameters sent to the store**")
        st.json(debug.get("generated_sql_parameters") or debug.get("parameters") or {})
        for msg in debug.get("debug_messages", []):
            st.caption(msg)


def _render_query_response(data: dict):
    results = data.get("results", {})
    if data.get("filter_extraction_successful"):
        st.success(f"{data.get('filter_summary', '')}  ·  {data.get('processing_time_ms', 0)} ms")
    else:
        st.warning("Could not interpret the question -- showing unfiltered results")

    for w in data.get("warnings", []):
        st.warning(w)

    items = results.get("items", [])
    if items:
        df = _reports_frame(items)
        st.dataframe(df, use_container_width=True)
        st.caption(
            f"Page {results.get('page_number')} of {results.get('total_pages')} "
            f"· {results.get('total_count')} matching strategies"
        )
        st.download_button("Download CSV", df.to_csv(index=False),
                           file_name="trigger_reports.csv", mime="text/csv")
    else:
        st.info("No strategies match these filters.")

    with st.expander("Applied filters", expanded=False):
        st.json({k: v for k, v in data.get("applied_filters", {}).items() if v is not None})

    _render_debug(data.get("debug_info"))


def _render_intent_response(data: dict):
    if data.get("success"):
        st.success(f"Intent **{data.get('intent')}** · {data.get('explanation', '')}")
    else:
        st.error(data.get("error") or "Language backend failed -- showing the overall summary")

    for w in data.get("warnings", []):
        st.warning(w)

    summary = data.get("summary")
    if summary:
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Emails", summary.get("total_emails", 0))
        c2.metric("Delivery rate", f"{summary.get('delivery_rate', 0)}%")
        c3.metric("Open rate", f"{summary.get('open_rate', 0)}%")
        c4.metric("Click rate", f"{summary.get('click_rate', 0)}%")

    reports = data.get("trigger_reports")
    if reports:
        st.dataframe(_reports_frame(reports), use_container_width=True)

    names = data.get("available_strategies")
    if names:
        st.write("**Available strategies:** " + ", ".join(names))

    if data.get("generated_sql"):
        with st.expander("Generated SQL", expanded=False):
            st.code(data["generated_sql"], language="sql")

    _render_debug(data.get("debug_info"))


def _render(msg_data: dict, kind: str):
    if kind == "Intent":
        _render_intent_response(msg_data)
    else:
        _render_query_response(msg_data)


for msg in st.session_state.messages:
    with st.chat_message(msg["role"]):
        if msg["role"] == "user":
            st.markdown(msg["content"])
        else:
            _render(msg["data"], msg["surface"])


prefill = st.session_state.pop("prefill", None)
question = st.chat_input("Ask about your trigger reports...") or prefill

if question:
    st.session_state.messages.append({"role": "user", "content": question})
    with st.chat_message("user"):
        st.markdown(question)

    with st.chat_message("assistant"):
        with st.spinner("Interpreting and querying..."):
            try:
                if surface == "Intent":
                    resp = httpx.post(
                        f"{API_BASE}/nl/intent",
                        json={"query": question, "include_debug_info": include_debug},
                        timeout=_TIMEOUT,
                    )
                else:
                    resp = httpx.post(
                        f"{API_BASE}/nl/query",
                        json={
                            "query": question,
                            "page_number": int(page_number),
                            "page_size": int(page_size),
                            "include_debug_info": include_debug,
                        },
                        timeout=_TIMEOUT,
                    )
                resp.raise_for_status()
                data = resp.json()
            except httpx.ConnectError:
                st.error("Cannot reach the API. Start it with:\n```\nuvicorn src.api.main:app --reload\n```")
                st.stop()
            except httpx.HTTPStatusError as exc:
                st.error(f"API returned {exc.response.status_code}: {exc.response.text}")
                st.stop()

        _render(data, surface)
        st.session_state.messages.append({"role": "assistant", "data": data, "surface": surface})
