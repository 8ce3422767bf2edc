"""
Categories repository module.

Categories are listed by ``sort_order``. Seeded defaults carry
``is_default = 1``; the count of user-created ones backs tier limits.
"""

from typing import Optional

from castar.models.types import TransactionType

from .base import SyncedRepository
from .models import Category


class CategoryRepository(SyncedRepository[Category]):
    """Repository for managing transaction categories."""

    table = "categories"
    model = Category

    def find_by_user(self, user_id: str) -> list[Category]:
        return self._find_many(
            "SELECT * FROM categories WHERE user_id = ? ORDER BY sort_order ASC",
            (user_id,),
        )

    def find_by_type(self, user_id: str, category_type: TransactionType) -> list[Category]:
        return self._find_many(
            """
            SELECT * FROM categories
            WHERE user_id = ? AND type = ?
            ORDER BY sort_order ASC
            """,
            (user_id, category_type.value),
        )

    def find_default_by_type(
        self, user_id: str, category_type: TransactionType, exclude_id: Optional[str] = None
    ) -> Optional[Category]:
        """
        Pick the fallback category of a type: the last seeded default.

        Seed order puts the "other" bucket last in each type, which makes it
        the natural target when a category is removed.
        """
        row = self.db.fetch_one(
            """
            SELECT * FROM categories
            WHERE user_id = ? AND type = ? AND is_default = 1 AND id != ?
            ORDER BY sort_order DESC
            LIMIT 1
            """,
            (user_id, category_type.value, exclude_id or ""),
        )
        return self._to_entity(row)

    def count_by_user(self, user_id: str) -> int:
        """Count every category a user has, seeded or not."""
        row = self.db.fetch_one(
            "SELECT COUNT(*) AS cnt FROM categories WHERE user_id = ?", (user_id,)
        )
        return row["cnt"] if row else 0

    def count_user_created(self, user_id: str) -> int:
        """Count non-default categories, the figure tier limits apply to."""
        row = self.db.fetch_one(
            """
            SELECT COUNT(*) AS cnt FROM categories
            WHERE user_id = ? AND is_default = 0
            """,
            (user_id,),
        )
        return row["cnt"] if row else 0

    def next_sort_order(self, user_id: str) -> int:
        row = self.db.fetch_one(
            """
            SELECT COALESCE(MAX(sort_order), -1) + 1 AS next_order
            FROM categories WHERE user_id = ?
            """,
            (user_id,),
        )
        return row["next_order"] if row else 0
