"""
Budgets repository module.

Budgets are never hard-deleted by users: ``deactivate`` flips ``is_active``
so historical enrichment stays reproducible.
"""

from typing import Optional

from .base import SyncedRepository, now_ms
from .models import Budget


class BudgetRepository(SyncedRepository[Budget]):
    """Repository for managing budgets."""

    table = "budgets"
    model = Budget

    def find_by_user(self, user_id: str) -> list[Budget]:
        """Active budgets of a user, newest first."""
        return self._find_many(
            """
            SELECT * FROM budgets
            WHERE user_id = ? AND is_active = 1
            ORDER BY created_at DESC
            """,
            (user_id,),
        )

    def find_active(self, user_id: str) -> list[Budget]:
        return self.find_by_user(user_id)

    def find_by_category(self, user_id: str, category_id: str) -> Optional[Budget]:
        """The active budget scoped to one category, if any."""
        row = self.db.fetch_one(
            """
            SELECT * FROM budgets
            WHERE user_id = ? AND category_id = ? AND is_active = 1
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (user_id, category_id),
        )
        return self._to_entity(row)

    def deactivate(self, budget_id: str, updated_at: Optional[int] = None) -> bool:
        cursor = self.db.execute(
            "UPDATE budgets SET is_active = 0, updated_at = ? WHERE id = ?",
            (updated_at if updated_at is not None else now_ms(), budget_id),
        )
        return cursor.rowcount > 0

    def reassign_category(
        self, from_category_id: str, to_category_id: str, updated_at: int
    ) -> list[str]:
        """
        Move budgets off a category that is being removed.

        The moved budgets are also deactivated: their limit was set for the old
        category and would otherwise start tracking a different one.

        Returns:
            Ids of the budgets that were moved
        """
        ids = [
            row["id"]
            for row in self.db.fetch_all(
                "SELECT id FROM budgets WHERE category_id = ?", (from_category_id,)
            )
        ]
        if ids:
            self.db.execute(
                """
                UPDATE budgets SET category_id = ?, is_active = 0, updated_at = ?
                WHERE category_id = ?
                """,
                (to_category_id, updated_at, from_category_id),
            )
        return ids
