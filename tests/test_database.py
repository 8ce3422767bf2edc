"""Tests for the database handle, transactions and schema migrations."""

import sqlite3

import pytest

from castar.db import Database, LATEST_VERSION, current_version, run_migrations
from castar.db.migrations import MIGRATIONS


def _rate_count(db: Database) -> int:
    return db.fetch_one("SELECT COUNT(*) AS cnt FROM exchange_rates")["cnt"]


def _insert_rate(db: Database, rate_id: str):
    db.execute(
        """
        INSERT INTO exchange_rates (id, base_currency, target_currency, rate, fetched_at)
        VALUES (?, 'USD', 'UZS', 12500, 0)
        """,
        (rate_id,),
    )


class TestTransactions:
    """Tests for Database.transaction()."""

    def test_commit_on_success(self, db):
        """Statements inside a transaction are kept when the block succeeds."""
        with db.transaction():
            _insert_rate(db, "USD_UZS")
        assert _rate_count(db) == 1

    def test_rollback_on_error(self, db):
        """An exception undoes every statement of the block."""
        with pytest.raises(RuntimeError):
            with db.transaction():
                _insert_rate(db, "USD_UZS")
                raise RuntimeError("boom")
        assert _rate_count(db) == 0

    def test_nested_failure_only_undoes_inner_block(self, db):
        """A caught failure in a nested block rolls back to its savepoint."""
        with db.transaction():
            _insert_rate(db, "USD_UZS")
            with pytest.raises(sqlite3.IntegrityError):
                with db.transaction():
                    _insert_rate(db, "EUR_UZS")
                    _insert_rate(db, "EUR_UZS")
        ids = [row["id"] for row in db.fetch_all("SELECT id FROM exchange_rates")]
        assert ids == ["USD_UZS"]

    def test_original_error_survives_aborted_transaction(self, db):
        """If SQLite already ended the transaction, the block's own error still surfaces."""
        with pytest.raises(RuntimeError, match="boom"):
            with db.transaction() as conn:
                _insert_rate(db, "USD_UZS")
                conn.execute("ROLLBACK")
                raise RuntimeError("boom")
        assert not db.in_transaction
        assert _rate_count(db) == 0

        with db.transaction():
            _insert_rate(db, "EUR_UZS")
        assert _rate_count(db) == 1

    def test_nested_error_survives_aborted_transaction(self, db):
        with pytest.raises(RuntimeError, match="inner"):
            with db.transaction() as conn:
                with db.transaction():
                    _insert_rate(db, "USD_UZS")
                    conn.execute("ROLLBACK")
                    raise RuntimeError("inner")
        assert not db.in_transaction
        assert _rate_count(db) == 0

    def test_in_transaction_flag(self, db):
        assert not db.in_transaction
        with db.transaction():
            assert db.in_transaction
        assert not db.in_transaction

    def test_foreign_keys_enforced(self, db):
        """A transaction pointing at a missing account is rejected."""
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                """
                INSERT INTO transactions (
                    id, user_id, account_id, category_id, type, amount,
                    currency, date, created_at, updated_at
                ) VALUES ('t1', 'u1', 'missing', 'missing', 'expense', 10,
                          'UZS', 0, 0, 0)
                """
            )


class TestDatabaseHandle:
    """Tests for connection lifecycle."""

    def test_default_is_in_memory(self):
        database = Database()
        assert database.is_memory

    def test_file_database_uses_wal(self, tmp_path):
        path = tmp_path / "nested" / "castar.db"
        with Database(path) as database:
            run_migrations(database)
            mode = database.fetch_one("PRAGMA journal_mode")[0]
        assert mode == "wal"
        assert path.exists()

    def test_reopen_after_close(self, tmp_path):
        database = Database(tmp_path / "castar.db")
        run_migrations(database)
        _insert_rate(database, "USD_UZS")
        database.close()
        assert _rate_count(database) == 1
        database.close()


class TestMigrations:
    """Tests for versioned schema migrations."""

    def test_fresh_database_is_at_latest_version(self, db):
        assert current_version(db) == LATEST_VERSION

    def test_rerun_is_noop(self, db):
        assert run_migrations(db) == []

    def test_sequence_backfill_keeps_enqueue_order(self):
        """Rows queued before the sequence column existed get ordered by time."""
        database = Database()
        run_migrations_v1_only(database)
        for item_id, created_at in (("late", 200), ("early", 100)):
            database.execute(
                """
                INSERT INTO sync_queue (id, table_name, record_id, action, data, created_at)
                VALUES (?, 'accounts', 'a1', 'update', '{}', ?)
                """,
                (item_id, created_at),
            )

        assert run_migrations(database) == [2]
        rows = database.fetch_all("SELECT id, seq FROM sync_queue ORDER BY seq")
        assert [(row["id"], row["seq"]) for row in rows] == [("early", 1), ("late", 2)]
        database.close()


def run_migrations_v1_only(database: Database):
    first = MIGRATIONS[0]
    database.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at INTEGER NOT NULL
        )
        """
    )
    for statement in first.statements:
        database.execute(statement)
    database.execute(
        "INSERT INTO schema_migrations (version, applied_at) VALUES (?, 0)",
        (first.version,),
    )
