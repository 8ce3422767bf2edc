"""
Accounts repository module.

Handles account persistence, including the incremental balance ledger:
balances are adjusted by signed deltas as transactions come and go, never
recomputed on read.
"""

from typing import Optional

from .base import SyncedRepository, now_ms
from .models import Account


class AccountRepository(SyncedRepository[Account]):
    """Repository for managing accounts."""

    table = "accounts"
    model = Account

    def find_by_user(self, user_id: str, include_archived: bool = False) -> list[Account]:
        """
        Get a user's accounts, oldest first.

        Args:
            user_id: Owner of the accounts
            include_archived: Whether archived accounts are included

        Returns:
            List of Account objects
        """
        if include_archived:
            return self._find_many(
                "SELECT * FROM accounts WHERE user_id = ? ORDER BY created_at ASC",
                (user_id,),
            )
        return self._find_many(
            """
            SELECT * FROM accounts
            WHERE user_id = ? AND is_archived = 0
            ORDER BY created_at ASC
            """,
            (user_id,),
        )

    def adjust_balance(
        self, account_id: str, delta: float, updated_at: Optional[int] = None
    ) -> bool:
        """
        Add ``delta`` to the stored balance and stamp ``updated_at``.

        A single statement, so the read-modify-write cannot interleave.
        """
        cursor = self.db.execute(
            "UPDATE accounts SET balance = balance + ?, updated_at = ? WHERE id = ?",
            (delta, updated_at if updated_at is not None else now_ms(), account_id),
        )
        return cursor.rowcount > 0

    def recompute_balance(self, account_id: str) -> float:
        """
        Sum the account's transactions from scratch.

        Diagnostic counterpart of the incremental ledger; the stored balance
        must always equal this value.
        """
        row = self.db.fetch_one(
            """
            SELECT COALESCE(SUM(
                CASE WHEN type = 'income' THEN amount ELSE -amount END
            ), 0) AS total
            FROM transactions
            WHERE account_id = ?
            """,
            (account_id,),
        )
        return row["total"] if row else 0.0

    def archive(self, account_id: str, updated_at: Optional[int] = None) -> bool:
        return self._set_archived(account_id, True, updated_at)

    def unarchive(self, account_id: str, updated_at: Optional[int] = None) -> bool:
        return self._set_archived(account_id, False, updated_at)

    def _set_archived(
        self, account_id: str, archived: bool, updated_at: Optional[int]
    ) -> bool:
        cursor = self.db.execute(
            "UPDATE accounts SET is_archived = ?, updated_at = ? WHERE id = ?",
            (
                1 if archived else 0,
                updated_at if updated_at is not None else now_ms(),
                account_id,
            ),
        )
        return cursor.rowcount > 0
