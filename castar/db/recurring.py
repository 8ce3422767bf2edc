"""
Recurring-rule repository module.

Only the primitives a scheduler needs live here: query what is due and move
``next_date`` forward. Nothing in this package materializes transactions on
a timer.
"""

from typing import Optional

from .base import BaseRepository, now_ms
from .models import RecurringTransaction


class RecurringRepository(BaseRepository[RecurringTransaction]):
    """Repository for managing recurring transaction rules."""

    table = "recurrings"
    model = RecurringTransaction

    def find_by_user(self, user_id: str) -> list[RecurringTransaction]:
        """Active rules of a user, soonest first."""
        return self._find_many(
            """
            SELECT * FROM recurrings
            WHERE user_id = ? AND is_active = 1
            ORDER BY next_date ASC
            """,
            (user_id,),
        )

    def find_due(
        self, now: int, user_id: Optional[str] = None
    ) -> list[RecurringTransaction]:
        """Active rules whose ``next_date`` is at or before ``now``."""
        if user_id is not None:
            return self._find_many(
                """
                SELECT * FROM recurrings
                WHERE is_active = 1 AND next_date <= ? AND user_id = ?
                ORDER BY next_date ASC
                """,
                (now, user_id),
            )
        return self._find_many(
            """
            SELECT * FROM recurrings
            WHERE is_active = 1 AND next_date <= ?
            ORDER BY next_date ASC
            """,
            (now,),
        )

    def pause(self, recurring_id: str, updated_at: Optional[int] = None) -> bool:
        return self._set_active(recurring_id, False, updated_at)

    def resume(self, recurring_id: str, updated_at: Optional[int] = None) -> bool:
        return self._set_active(recurring_id, True, updated_at)

    def _set_active(
        self, recurring_id: str, active: bool, updated_at: Optional[int]
    ) -> bool:
        cursor = self.db.execute(
            "UPDATE recurrings SET is_active = ?, updated_at = ? WHERE id = ?",
            (
                1 if active else 0,
                updated_at if updated_at is not None else now_ms(),
                recurring_id,
            ),
        )
        return cursor.rowcount > 0

    def update_next_date(
        self, recurring_id: str, next_date: int, updated_at: Optional[int] = None
    ) -> bool:
        cursor = self.db.execute(
            "UPDATE recurrings SET next_date = ?, updated_at = ? WHERE id = ?",
            (
                next_date,
                updated_at if updated_at is not None else now_ms(),
                recurring_id,
            ),
        )
        return cursor.rowcount > 0

    def reassign_category(
        self, from_category_id: str, to_category_id: str, updated_at: int
    ) -> list[str]:
        """Point every rule of one category at another; returns the moved ids."""
        ids = [
            row["id"]
            for row in self.db.fetch_all(
                "SELECT id FROM recurrings WHERE category_id = ?", (from_category_id,)
            )
        ]
        if ids:
            self.db.execute(
                """
                UPDATE recurrings SET category_id = ?, updated_at = ?
                WHERE category_id = ?
                """,
                (to_category_id, updated_at, from_category_id),
            )
        return ids
