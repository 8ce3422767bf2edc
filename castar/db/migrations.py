"""
Schema migrations for the CaStar local store.

Migrations are applied in version order, each inside its own transaction,
and recorded in ``schema_migrations`` so they run exactly once.
"""

import logging
from dataclasses import dataclass

from .base import Database, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    statements: tuple[str, ...]


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        description="Core tables",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id TEXT PRIMARY KEY,
                remote_id TEXT,
                user_id TEXT NOT NULL CHECK(length(user_id) > 0),
                name TEXT NOT NULL,
                icon TEXT NOT NULL DEFAULT '📁',
                color TEXT NOT NULL DEFAULT '#808080',
                type TEXT NOT NULL CHECK(type IN ('income', 'expense', 'transfer')),
                is_default INTEGER NOT NULL DEFAULT 0 CHECK(is_default IN (0, 1)),
                parent_id TEXT,
                sort_order INTEGER NOT NULL DEFAULT 0,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                synced_at INTEGER
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS accounts (
                id TEXT PRIMARY KEY,
                remote_id TEXT,
                user_id TEXT NOT NULL CHECK(length(user_id) > 0),
                name TEXT NOT NULL,
                type TEXT NOT NULL CHECK(type IN ('cash', 'card', 'bank', 'savings')),
                currency TEXT NOT NULL DEFAULT 'UZS',
                balance REAL NOT NULL DEFAULT 0,
                icon TEXT,
                color TEXT,
                is_archived INTEGER NOT NULL DEFAULT 0 CHECK(is_archived IN (0, 1)),
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                synced_at INTEGER
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS transactions (
                id TEXT PRIMARY KEY,
                remote_id TEXT,
                user_id TEXT NOT NULL CHECK(length(user_id) > 0),
                account_id TEXT NOT NULL REFERENCES accounts(id),
                category_id TEXT NOT NULL REFERENCES categories(id),
                family_group_id TEXT,
                type TEXT NOT NULL CHECK(type IN ('income', 'expense', 'transfer')),
                amount REAL NOT NULL CHECK(amount > 0),
                currency TEXT NOT NULL DEFAULT 'UZS',
                amount_in_default REAL,
                exchange_rate REAL,
                description TEXT,
                date INTEGER NOT NULL,
                is_recurring INTEGER NOT NULL DEFAULT 0 CHECK(is_recurring IN (0, 1)),
                recurring_id TEXT,
                voice_input INTEGER NOT NULL DEFAULT 0 CHECK(voice_input IN (0, 1)),
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                synced_at INTEGER
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS budgets (
                id TEXT PRIMARY KEY,
                remote_id TEXT,
                user_id TEXT NOT NULL CHECK(length(user_id) > 0),
                family_group_id TEXT,
                category_id TEXT REFERENCES categories(id),
                name TEXT NOT NULL,
                amount REAL NOT NULL CHECK(amount > 0),
                currency TEXT NOT NULL DEFAULT 'UZS',
                period TEXT NOT NULL CHECK(
                    period IN ('daily', 'weekly', 'monthly', 'yearly')
                ),
                start_date INTEGER NOT NULL,
                end_date INTEGER,
                is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0, 1)),
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                synced_at INTEGER
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS recurrings (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL CHECK(length(user_id) > 0),
                account_id TEXT NOT NULL REFERENCES accounts(id),
                category_id TEXT NOT NULL REFERENCES categories(id),
                type TEXT NOT NULL CHECK(type IN ('income', 'expense', 'transfer')),
                amount REAL NOT NULL CHECK(amount > 0),
                currency TEXT NOT NULL DEFAULT 'UZS',
                description TEXT,
                frequency TEXT NOT NULL CHECK(
                    frequency IN ('daily', 'weekly', 'monthly', 'yearly')
                ),
                next_date INTEGER NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1 CHECK(is_active IN (0, 1)),
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS sync_queue (
                id TEXT PRIMARY KEY,
                table_name TEXT NOT NULL,
                record_id TEXT NOT NULL,
                action TEXT NOT NULL CHECK(action IN ('create', 'update', 'delete')),
                data TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_error TEXT
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS exchange_rates (
                id TEXT PRIMARY KEY,
                base_currency TEXT NOT NULL,
                target_currency TEXT NOT NULL,
                rate REAL NOT NULL,
                fetched_at INTEGER NOT NULL
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_transactions_user_date "
            "ON transactions(user_id, date DESC)",
            "CREATE INDEX IF NOT EXISTS idx_transactions_category "
            "ON transactions(category_id)",
            "CREATE INDEX IF NOT EXISTS idx_budgets_user ON budgets(user_id, is_active)",
            "CREATE INDEX IF NOT EXISTS idx_categories_user ON categories(user_id)",
            "CREATE INDEX IF NOT EXISTS idx_sync_queue_pending ON sync_queue(attempts)",
        ),
    ),
    Migration(
        version=2,
        description="Monotonic outbox sequence",
        statements=(
            "ALTER TABLE sync_queue ADD COLUMN seq INTEGER NOT NULL DEFAULT 0",
            # Existing rows keep their wall-clock order
            """
            UPDATE sync_queue SET seq = (
                SELECT COUNT(*) FROM sync_queue AS older
                WHERE older.created_at < sync_queue.created_at
                   OR (older.created_at = sync_queue.created_at
                       AND older.rowid <= sync_queue.rowid)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_sync_queue_seq ON sync_queue(seq)",
        ),
    ),
)

LATEST_VERSION = MIGRATIONS[-1].version


def _ensure_migrations_table(db: Database):
    db.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at INTEGER NOT NULL
        )
    """)


def applied_versions(db: Database) -> list[int]:
    """Versions already recorded in ``schema_migrations``."""
    _ensure_migrations_table(db)
    rows = db.fetch_all("SELECT version FROM schema_migrations ORDER BY version")
    return [row["version"] for row in rows]


def current_version(db: Database) -> int:
    versions = applied_versions(db)
    return versions[-1] if versions else 0


def run_migrations(db: Database) -> list[int]:
    """
    Apply every migration that has not run yet.

    Args:
        db: Database handle

    Returns:
        The versions applied by this call (empty when already up to date)
    """
    applied = set(applied_versions(db))
    newly_applied = []

    for migration in MIGRATIONS:
        if migration.version in applied:
            continue
        with db.transaction() as conn:
            for statement in migration.statements:
                conn.execute(statement)
            conn.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (migration.version, now_ms()),
            )
        newly_applied.append(migration.version)
        logger.info(
            f"Applied migration {migration.version}: {migration.description}"
        )

    if not newly_applied:
        logger.debug(f"Schema up to date at version {LATEST_VERSION}")
    return newly_applied
