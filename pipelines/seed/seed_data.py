"""
Seed data generator -- creates and fills the aggregated trigger-report table.

Generates:
  - ~60 email strategies with Faker-made names (plus a few fixed, well-known ones)
  - per-strategy send, delivery, open, click, bounce, complaint and
    unsubscribe counts with realistic funnel ratios
  - first/last send timestamps over the past 18 months

Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import os
import random
from datetime import datetime, timedelta
from pathlib import Path

from dotenv import load_dotenv
from faker import Faker
from sqlalchemy import create_engine, text

# ── Load .env from project root ─────────────────────────
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(_PROJECT_ROOT / ".env")

fake = Faker()
Faker.seed(42)
random.seed(42)

# ── Tunables ─────────────────────────────────────────────
NUM_STRATEGIES = 60
MIN_EMAILS, MAX_EMAILS = 0, 25_000

FIXED_STRATEGIES = [
    "Welcome Series", "Promotional Campaign", "Newsletter Monthly",
    "Abandoned Cart", "Customer Feedback", "Re-engagement",
]
SUFFIXES = ["Campaign", "Series", "Reminder", "Digest", "Follow-up", "Promo", "Alert", "Newsletter"]

DATE_END = datetime.utcnow().replace(microsecond=0)
DATE_START = DATE_END - timedelta(days=540)

_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    strategy_name       TEXT PRIMARY KEY,
    total_emails        INTEGER NOT NULL DEFAULT 0,
    delivered_count     INTEGER NOT NULL DEFAULT 0,
    bounced_count       INTEGER NOT NULL DEFAULT 0,
    opened_count        INTEGER NOT NULL DEFAULT 0,
    clicked_count       INTEGER NOT NULL DEFAULT 0,
    complained_count    INTEGER NOT NULL DEFAULT 0,
    unsubscribed_count  INTEGER NOT NULL DEFAULT 0,
    first_email_sent    TIMESTAMP NULL,
    last_email_sent     TIMESTAMP NULL
)
"""


def _db_url() -> str:
    user = os.getenv("POSTGRES_USER", "triggers")
    pw = os.getenv("POSTGRES_PASSWORD", "triggers_pw")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "triggers")
    return f"postgresql://{user}:{pw}@{host}:{port}/{db}"


def _table() -> str:
    return os.getenv("TRIGGER_TABLE", "email_trigger_reports")


# ── Generators ───────────────────────────────────────────

def _strategy_names() -> list[str]:
    names = list(FIXED_STRATEGIES)
    seen = {n.lower() for n in names}
    while len(names) < NUM_STRATEGIES:
        name = f"{fake.catch_phrase().split()[0].title()} {fake.word().title()} {random.choice(SUFFIXES)}"
        if name.lower() not in seen:
            seen.add(name.lower())
            names.append(name)
    return names


def gen_report(name: str) -> dict:
    """One strategy row; counts follow a send -> deliver -> open -> click funnel."""
    total = random.randint(MIN_EMAILS, MAX_EMAILS)
    bounced = int(total * random.uniform(0.0, 0.12))
    delivered = total - bounced
    opened = int(delivered * random.uniform(0.10, 0.55))
    clicked = int(opened * random.uniform(0.05, 0.45))
    complained = int(delivered * random.uniform(0.0, 0.004))
    unsubscribed = int(delivered * random.uniform(0.0, 0.02))

    if total == 0:
        first = last = None
    else:
        first = fake.date_time_between(start_date=DATE_START, end_date=DATE_END)
        last = fake.date_time_between(start_date=first, end_date=DATE_END)

    return {
        "strategy_name": name,
        "total_emails": total,
        "delivered_count": delivered,
        "bounced_count": bounced,
        "opened_count": opened,
        "clicked_count": clicked,
        "complained_count": complained,
        "unsubscribed_count": unsubscribed,
        "first_email_sent": first,
        "last_email_sent": last,
    }


def gen_reports() -> list[dict]:
    return [gen_report(name) for name in _strategy_names()]


# ── Bulk insert helper ───────────────────────────────────

def _bulk_insert(engine, table: str, rows: list[dict], batch_size: int = 500):
    """Insert rows into *table* in batches using executemany-style VALUES."""
    if not rows:
        return
    cols = list(rows[0].keys())
    col_list = ", ".join(cols)
    param_list = ", ".join(f":{c}" for c in cols)
    sql = text(f"INSERT INTO {table} ({col_list}) VALUES ({param_list}) ON CONFLICT DO NOTHING")
    with engine.begin() as conn:
        for i in range(0, len(rows), batch_size):
            conn.execute(sql, rows[i : i + batch_size])
    print(f"  ✓ {table}: {len(rows):,} rows")


# ── Main ─────────────────────────────────────────────────

def main():
    print("═══ Trigger Report Seed ═══")
    table = _table()
    engine = create_engine(_db_url(), echo=False)

    print(f"Recreating {table} …")
    with engine.begin() as conn:
        conn.execute(text(_DDL.format(table=table)))
        conn.execute(text(f"TRUNCATE TABLE {table}"))

    print("Generating data …")
    reports = gen_reports()

    print("Inserting …")
    _bulk_insert(engine, table, reports)

    total_emails = sum(r["total_emails"] for r in reports)
    print(f"\nDone -- seeded {len(reports):,} strategies, {total_emails:,} emails.")


if __name__ == "__main__":
    main()
