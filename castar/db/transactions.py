"""
Transactions repository module for transaction CRUD and period queries.

Handles all transaction-related database operations including:
- Listing by user and by filters (date descending)
- Period-bounded income/expense sums
- Per-category expense sums used for budgets
- Category breakdowns and daily totals used for analytics

Date bounds are inclusive on both ends everywhere in this module.
"""

from datetime import date, datetime, timedelta
from typing import Any

from castar.config import DEFAULT_TRANSACTION_LIMIT
from castar.models.dto import TransactionFilters

from .base import SyncedRepository
from .models import Transaction


class TransactionRepository(SyncedRepository[Transaction]):
    """Repository for managing ledger transactions."""

    table = "transactions"
    model = Transaction

    def find_by_user(
        self, user_id: str, limit: int = DEFAULT_TRANSACTION_LIMIT
    ) -> list[Transaction]:
        """Get a user's most recent transactions by ``date``."""
        return self._find_many(
            """
            SELECT * FROM transactions
            WHERE user_id = ?
            ORDER BY date DESC
            LIMIT ?
            """,
            (user_id, limit),
        )

    def find_by_filters(
        self, user_id: str, filters: TransactionFilters
    ) -> list[Transaction]:
        """
        Get transactions matching every filter that is set.

        Args:
            user_id: Owner of the transactions
            filters: Optional type, category, account, family group, date range,
                amount range and description search

        Returns:
            List of Transaction objects, newest first
        """
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]

        if filters.type is not None:
            conditions.append("type = ?")
            params.append(filters.type.value)
        if filters.category_id:
            conditions.append("category_id = ?")
            params.append(filters.category_id)
        if filters.account_id:
            conditions.append("account_id = ?")
            params.append(filters.account_id)
        if filters.family_group_id:
            conditions.append("family_group_id = ?")
            params.append(filters.family_group_id)
        if filters.date_from is not None:
            conditions.append("date >= ?")
            params.append(filters.date_from)
        if filters.date_to is not None:
            conditions.append("date <= ?")
            params.append(filters.date_to)
        if filters.amount_min is not None:
            conditions.append("amount >= ?")
            params.append(filters.amount_min)
        if filters.amount_max is not None:
            conditions.append("amount <= ?")
            params.append(filters.amount_max)
        if filters.search:
            conditions.append("description LIKE ?")
            params.append(f"%{filters.search}%")

        where = " AND ".join(conditions)
        return self._find_many(
            f"SELECT * FROM transactions WHERE {where} ORDER BY date DESC",
            params,
        )

    def get_summary(self, user_id: str, date_from: int, date_to: int) -> dict[str, float]:
        """
        Sum income and expense amounts with ``date`` in ``[date_from, date_to]``.

        Transfers are not counted on either side.
        """
        row = self.db.fetch_one(
            """
            SELECT
                COALESCE(SUM(
                    CASE WHEN type = 'income' THEN amount ELSE 0 END
                ), 0) AS total_income,
                COALESCE(SUM(
                    CASE WHEN type = 'expense' THEN amount ELSE 0 END
                ), 0) AS total_expense
            FROM transactions
            WHERE user_id = ? AND date >= ? AND date <= ?
            """,
            (user_id, date_from, date_to),
        )
        return {
            "income": row["total_income"] if row else 0.0,
            "expense": row["total_expense"] if row else 0.0,
        }

    def sum_by_category(
        self, user_id: str, category_id: str, date_from: int, date_to: int
    ) -> float:
        """Total expense amount for one category within the inclusive range."""
        row = self.db.fetch_one(
            """
            SELECT COALESCE(SUM(amount), 0) AS total
            FROM transactions
            WHERE user_id = ? AND category_id = ? AND type = 'expense'
              AND date >= ? AND date <= ?
            """,
            (user_id, category_id, date_from, date_to),
        )
        return row["total"] if row else 0.0

    def totals_by_category(
        self,
        user_id: str,
        date_from: int,
        date_to: int,
        transaction_type: str = "expense",
    ) -> list[dict[str, Any]]:
        """
        Per-category totals and counts for one transaction type.

        Returns:
            Dicts with ``category_id``, ``total`` and ``count``, largest first
        """
        rows = self.db.fetch_all(
            """
            SELECT category_id, SUM(amount) AS total, COUNT(*) AS count
            FROM transactions
            WHERE user_id = ? AND type = ? AND date >= ? AND date <= ?
            GROUP BY category_id
            ORDER BY total DESC
            """,
            (user_id, transaction_type, date_from, date_to),
        )
        return [
            {
                "category_id": row["category_id"],
                "total": row["total"] or 0.0,
                "count": row["count"],
            }
            for row in rows
        ]

    def get_daily_totals(
        self, user_id: str, date_from: int, date_to: int
    ) -> dict[date, dict[str, float]]:
        """
        Get daily income/expense totals within a range.

        Every calendar day in the range is present, including days without
        transactions. Days are in local time.

        Returns:
            Dictionary mapping dates to {income, expense} totals
        """
        rows = self.db.fetch_all(
            """
            SELECT date(date / 1000, 'unixepoch', 'localtime') AS day,
                   type, SUM(amount) AS total
            FROM transactions
            WHERE user_id = ? AND date >= ? AND date <= ?
            GROUP BY day, type
            ORDER BY day ASC
            """,
            (user_id, date_from, date_to),
        )

        start_day = datetime.fromtimestamp(date_from / 1000).date()
        end_day = datetime.fromtimestamp(date_to / 1000).date()

        daily_totals: dict[date, dict[str, float]] = {}
        current = start_day
        while current <= end_day:
            daily_totals[current] = {"income": 0.0, "expense": 0.0}
            current += timedelta(days=1)

        for row in rows:
            day = date.fromisoformat(row["day"])
            if row["type"] in ("income", "expense") and day in daily_totals:
                daily_totals[day][row["type"]] = row["total"] or 0.0

        return daily_totals

    def count_by_category(self, category_id: str) -> int:
        row = self.db.fetch_one(
            "SELECT COUNT(*) AS cnt FROM transactions WHERE category_id = ?",
            (category_id,),
        )
        return row["cnt"] if row else 0

    def reassign_category(
        self, from_category_id: str, to_category_id: str, updated_at: int
    ) -> list[str]:
        """
        Point every transaction of one category at another.

        Returns:
            Ids of the transactions that were moved
        """
        ids = [
            row["id"]
            for row in self.db.fetch_all(
                "SELECT id FROM transactions WHERE category_id = ?",
                (from_category_id,),
            )
        ]
        if ids:
            self.db.execute(
                """
                UPDATE transactions SET category_id = ?, updated_at = ?
                WHERE category_id = ?
                """,
                (to_category_id, updated_at, from_category_id),
            )
        return ids
