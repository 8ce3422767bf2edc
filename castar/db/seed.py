"""
First-run bootstrap: default categories and a cash account per user.

Category names are i18n keys; the application shell translates them.
"""

import logging
from typing import NamedTuple, Optional

from castar.config import DEFAULT_ACCOUNT_ICON, DEFAULT_ACCOUNT_NAME, DEFAULT_CURRENCY
from castar.models.types import AccountType, TransactionType

from .base import Database, new_id, now_ms

logger = logging.getLogger(__name__)


class DefaultCategory(NamedTuple):
    name_key: str
    icon: str
    color: str
    type: TransactionType


DEFAULT_CATEGORIES: tuple[DefaultCategory, ...] = (
    # Expense categories
    DefaultCategory("categories.food", "food", "#F55858", TransactionType.EXPENSE),
    DefaultCategory("categories.transport", "car", "#4B8DF5", TransactionType.EXPENSE),
    DefaultCategory("categories.housing", "home", "#FAAD14", TransactionType.EXPENSE),
    DefaultCategory("categories.utilities", "flash", "#FBC44B", TransactionType.EXPENSE),
    DefaultCategory(
        "categories.entertainment", "game-controller", "#CC830C", TransactionType.EXPENSE
    ),
    DefaultCategory("categories.health", "medical", "#17E56C", TransactionType.EXPENSE),
    DefaultCategory("categories.education", "book", "#1D62E5", TransactionType.EXPENSE),
    DefaultCategory("categories.clothing", "shirt", "#E52222", TransactionType.EXPENSE),
    DefaultCategory("categories.gifts", "gift", "#F03D3D", TransactionType.EXPENSE),
    DefaultCategory(
        "categories.other_expense", "ellipsis-horizontal", "#808080", TransactionType.EXPENSE
    ),
    # Income categories
    DefaultCategory("categories.salary", "briefcase", "#09AD4D", TransactionType.INCOME),
    DefaultCategory("categories.freelance", "laptop", "#0FC95C", TransactionType.INCOME),
    DefaultCategory(
        "categories.investments", "trending-up", "#3DF08A", TransactionType.INCOME
    ),
    DefaultCategory(
        "categories.other_income", "ellipsis-horizontal", "#58F59E", TransactionType.INCOME
    ),
)


def seed_defaults(
    db: Database,
    user_id: str,
    currency: str = DEFAULT_CURRENCY,
    now: Optional[int] = None,
) -> bool:
    """
    Give a new user the default categories and one cash account.

    Idempotent: if the user already has any category nothing is written.
    Categories and account are inserted in one transaction, so a failure
    leaves neither behind.

    Args:
        db: Database handle
        user_id: The new user
        currency: Currency of the cash account
        now: Timestamp for the seeded rows (epoch millis)

    Returns:
        True if defaults were inserted, False if the user was already seeded
    """
    if not user_id:
        raise ValueError("User ID cannot be empty")

    now = now if now is not None else now_ms()

    with db.transaction() as conn:
        existing = conn.execute(
            "SELECT COUNT(*) AS cnt FROM categories WHERE user_id = ?", (user_id,)
        ).fetchone()
        if existing and existing["cnt"] > 0:
            logger.debug(f"User {user_id} already has categories, skipping seed")
            return False

        for sort_order, category in enumerate(DEFAULT_CATEGORIES):
            conn.execute(
                """
                INSERT INTO categories (
                    id, user_id, name, icon, color, type, is_default,
                    sort_order, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?, ?)
                """,
                (
                    new_id(),
                    user_id,
                    category.name_key,
                    category.icon,
                    category.color,
                    category.type.value,
                    sort_order,
                    now,
                    now,
                ),
            )

        conn.execute(
            """
            INSERT INTO accounts (
                id, user_id, name, type, currency, balance, icon,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
            """,
            (
                new_id(),
                user_id,
                DEFAULT_ACCOUNT_NAME,
                AccountType.CASH.value,
                currency,
                DEFAULT_ACCOUNT_ICON,
                now,
                now,
            ),
        )

    logger.info(
        f"Seeded {len(DEFAULT_CATEGORIES)} default categories and a "
        f"'{DEFAULT_ACCOUNT_NAME}' account for user {user_id}"
    )
    return True
