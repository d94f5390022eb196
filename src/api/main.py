"""
FastAPI application entry-point.

Routers:
  /nl               natural-language filtering and intent queries
  /trigger-reports  direct reporting endpoints over the trigger store
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routers import nl_query, trigger_reports
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="Trigger Report NL Query",
    version="0.1.0",
    description="Natural-language filtering and reporting over email trigger reports",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(nl_query.router, prefix="/nl", tags=["Natural language"])
app.include_router(trigger_reports.router, prefix="/trigger-reports", tags=["Trigger reports"])

_settings = get_settings()
logger.info("API ready: store=%s llm=%s", _settings.trigger_store, _settings.llm_provider)


@app.get("/health")
def health():
    settings = get_settings()
    return {"status": "ok", "store": settings.trigger_store, "llm_provider": settings.llm_provider}
