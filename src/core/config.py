"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── Trigger-report store ─────────────────────────────
    trigger_store: str = "mock"  # mock | postgres
    trigger_table: str = "email_trigger_reports"
    db_statement_timeout_ms: int = 10_000

    # ── Postgres ─────────────────────────────────────────
    postgres_user: str = "triggers"
    postgres_password: str = "triggers_pw"
    postgres_db: str = "triggers"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # ── Language backend ─────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-3-haiku-20240307"
    llm_timeout_seconds: float = 30.0
    llm_max_tokens: int = 512
    llm_temperature: float = 0.1
    llm_max_concurrency: int = 1

    # ── Query surface ────────────────────────────────────
    default_page_size: int = 50
    max_page_size: int = 1000
    max_query_length: int = 1000

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    streamlit_port: int = 8501
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
