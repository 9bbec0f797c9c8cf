import aiosqlite
from contextlib import asynccontextmanager

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS debtors (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    name TEXT NOT NULL,
    company_name TEXT,
    primary_contact_email TEXT,
    country TEXT,
    language_preference TEXT NOT NULL DEFAULT 'en',
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now'))
);

CREATE TABLE IF NOT EXISTS collection_cases (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    debtor_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    amount_owed REAL NOT NULL DEFAULT 0.0,
    currency TEXT NOT NULL DEFAULT 'AED',
    priority TEXT NOT NULL DEFAULT 'medium',
    ai_strategy TEXT,
    strategy_generated_at TEXT,
    next_action_due TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')),
    FOREIGN KEY (debtor_id) REFERENCES debtors(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS communication_logs (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    case_id TEXT,
    debtor_id TEXT,
    type TEXT NOT NULL DEFAULT 'email',
    direction TEXT NOT NULL CHECK(direction IN ('inbound', 'outbound')),
    subject TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    from_email TEXT,
    to_email TEXT,
    thread_id TEXT,
    ai_sentiment TEXT,
    ai_summary TEXT,
    ai_flags TEXT NOT NULL DEFAULT '[]',
    delivery_status TEXT,
    sent_at TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now'))
);

CREATE TABLE IF NOT EXISTS ai_interactions (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    case_id TEXT,
    interaction_type TEXT NOT NULL,
    prompt TEXT NOT NULL DEFAULT '',
    response TEXT NOT NULL DEFAULT '',
    model_used TEXT,
    prompt_tokens INTEGER NOT NULL DEFAULT 0,
    completion_tokens INTEGER NOT NULL DEFAULT 0,
    total_tokens INTEGER NOT NULL DEFAULT 0,
    cost_usd REAL NOT NULL DEFAULT 0.0,
    performance_metrics TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now'))
);

CREATE TABLE IF NOT EXISTS system_settings (
    organization_id TEXT NOT NULL,
    category TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL DEFAULT '{}',
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')),
    PRIMARY KEY (organization_id, category, key)
);

CREATE INDEX IF NOT EXISTS idx_cases_debtor ON collection_cases(debtor_id);
CREATE INDEX IF NOT EXISTS idx_comm_logs_thread ON communication_logs(organization_id, thread_id);
CREATE INDEX IF NOT EXISTS idx_comm_logs_case ON communication_logs(case_id);
CREATE INDEX IF NOT EXISTS idx_ai_interactions_org_created ON ai_interactions(organization_id, created_at);
"""

_db_path: str = ""


def set_db_path(path: str):
    global _db_path
    _db_path = path


@asynccontextmanager
async def get_db():
    """Yield an aiosqlite connection with WAL mode and foreign keys."""
    db = await aiosqlite.connect(_db_path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    try:
        yield db
    finally:
        await db.close()


async def init_db():
    """Create all tables if they don't exist."""
    async with get_db() as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()
