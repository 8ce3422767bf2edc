"""
Aggregation service: derived figures over stored transactions.

Nothing computed here is persisted. Budget progress and analytics are
rebuilt from the transaction table on every call, so deleting or editing a
transaction is reflected without any bookkeeping.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Optional, Union

from castar.config import (
    BUDGET_EXCEEDED_PERCENT,
    BUDGET_WARNING_PERCENT,
    DEFAULT_CURRENCY,
)
from castar.db.models import Budget, Category
from castar.db.repository import LocalStore
from castar.models.types import AnalyticsPeriod, BudgetStatus

from .periods import analytics_range, period_range

logger = logging.getLogger(__name__)


@dataclass
class Summary:
    """Income and expense totals over a date range. Transfers are excluded."""

    income: float
    expense: float

    @property
    def net(self) -> float:
        return self.income - self.expense


def budget_status(percentage: float) -> BudgetStatus:
    """Classify budget usage against the warning and exceeded thresholds."""
    if percentage >= BUDGET_EXCEEDED_PERCENT:
        return BudgetStatus.EXCEEDED
    if percentage >= BUDGET_WARNING_PERCENT:
        return BudgetStatus.WARNING
    return BudgetStatus.OK


@dataclass
class EnrichedBudget:
    """A budget together with its progress in the current period."""

    budget: Budget
    spent: float
    remaining: float
    percentage: float
    period_start: int
    period_end: int

    @property
    def status(self) -> BudgetStatus:
        return budget_status(self.percentage)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            **self.budget.to_dict(),
            "spent": self.spent,
            "remaining": self.remaining,
            "percentage": self.percentage,
            "status": self.status.value,
            "period_start": self.period_start,
            "period_end": self.period_end,
        }


@dataclass
class CategorySummary:
    category: Optional[Category]
    category_id: str
    amount: float
    percentage: float
    transaction_count: int


@dataclass
class TrendPoint:
    date: date
    income: float
    expense: float


@dataclass
class AnalyticsSummary:
    """Totals, expense breakdown and daily trend for one analytics window."""

    total_income: float
    total_expense: float
    balance: float
    currency: str
    date_from: int
    date_to: int
    by_category: list[CategorySummary] = field(default_factory=list)
    trend: list[TrendPoint] = field(default_factory=list)


class AggregationService:
    """Summaries, budget progress and analytics for a user."""

    def __init__(
        self, store: LocalStore, clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the aggregation service.

        Args:
            store: Local store with all repositories
            clock: Source of the reference moment for period windows
        """
        self.store = store
        self.clock = clock

    def get_summary(self, user_id: str, date_from: int, date_to: int) -> Summary:
        """Income and expense totals with ``date`` in ``[date_from, date_to]``."""
        totals = self.store.transactions.get_summary(user_id, date_from, date_to)
        return Summary(income=totals["income"], expense=totals["expense"])

    def sum_by_category(
        self, user_id: str, category_id: str, date_from: int, date_to: int
    ) -> float:
        """Expense total of one category within the inclusive range."""
        return self.store.transactions.sum_by_category(
            user_id, category_id, date_from, date_to
        )

    def enrich_budget(
        self, budget: Budget, now: Optional[datetime] = None
    ) -> EnrichedBudget:
        """
        Compute a budget's progress in the period containing ``now``.

        A budget without a category tracks nothing and reports zero spent.
        Remaining never goes below zero; percentage does go past 100 when the
        budget is overspent.
        """
        now = now or self.clock()
        period_start, period_end = period_range(budget.period, now, budget.start_date)

        if budget.category_id is None:
            spent = 0.0
        else:
            spent = self.sum_by_category(
                budget.user_id, budget.category_id, period_start, period_end
            )

        remaining = max(0.0, budget.amount - spent)
        percentage = spent * 100 / budget.amount if budget.amount > 0 else 0.0

        return EnrichedBudget(
            budget=budget,
            spent=spent,
            remaining=remaining,
            percentage=percentage,
            period_start=period_start,
            period_end=period_end,
        )

    def enrich_budgets(
        self, user_id: str, now: Optional[datetime] = None
    ) -> list[EnrichedBudget]:
        """Progress of every active budget of a user."""
        now = now or self.clock()
        return [
            self.enrich_budget(budget, now)
            for budget in self.store.budgets.find_by_user(user_id)
        ]

    def budget_status(
        self, budget: Union[Budget, EnrichedBudget], now: Optional[datetime] = None
    ) -> BudgetStatus:
        if isinstance(budget, Budget):
            budget = self.enrich_budget(budget, now)
        return budget.status

    def get_analytics(
        self,
        user_id: str,
        period: Union[AnalyticsPeriod, str] = AnalyticsPeriod.MONTH,
        now: Optional[datetime] = None,
        date_from: Optional[int] = None,
        date_to: Optional[int] = None,
        currency: str = DEFAULT_CURRENCY,
    ) -> AnalyticsSummary:
        """
        Build the analytics summary for one window.

        Args:
            user_id: Owner of the transactions
            period: week, month, quarter, year or custom
            now: Reference moment (default: the service clock)
            date_from: Start of a custom window
            date_to: End of a custom window
            currency: Currency label for the report

        Returns:
            AnalyticsSummary with expense breakdown (largest first) and one
            trend point per calendar day
        """
        now = now or self.clock()
        window_start, window_end = analytics_range(period, now, date_from, date_to)

        summary = self.get_summary(user_id, window_start, window_end)

        categories = {
            category.id: category
            for category in self.store.categories.find_by_user(user_id)
        }
        by_category = []
        for row in self.store.transactions.totals_by_category(
            user_id, window_start, window_end
        ):
            percentage = (
                row["total"] * 100 / summary.expense if summary.expense > 0 else 0.0
            )
            by_category.append(
                CategorySummary(
                    category=categories.get(row["category_id"]),
                    category_id=row["category_id"],
                    amount=row["total"],
                    percentage=percentage,
                    transaction_count=row["count"],
                )
            )

        daily = self.store.transactions.get_daily_totals(
            user_id, window_start, window_end
        )
        trend = [
            TrendPoint(date=day, income=totals["income"], expense=totals["expense"])
            for day, totals in daily.items()
        ]

        logger.debug(
            f"Analytics for {user_id}: {len(by_category)} categories, "
            f"{len(trend)} days"
        )
        return AnalyticsSummary(
            total_income=summary.income,
            total_expense=summary.expense,
            balance=summary.net,
            currency=currency,
            date_from=window_start,
            date_to=window_end,
            by_category=by_category,
            trend=trend,
        )
