from .aggregation import (
    AggregationService,
    AnalyticsSummary,
    CategorySummary,
    EnrichedBudget,
    Summary,
    TrendPoint,
    budget_status,
)
from .export import ExportFormat, ExportService
from .ledger import LedgerService
from .periods import analytics_range, next_occurrence, period_range
from .sync import PushResult, SyncReport, SyncService, SyncTransport

__all__ = [
    "AggregationService",
    "AnalyticsSummary",
    "CategorySummary",
    "EnrichedBudget",
    "ExportFormat",
    "ExportService",
    "LedgerService",
    "PushResult",
    "Summary",
    "SyncReport",
    "SyncService",
    "SyncTransport",
    "TrendPoint",
    "analytics_range",
    "budget_status",
    "next_occurrence",
    "period_range",
]
