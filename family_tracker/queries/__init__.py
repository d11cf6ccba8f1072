"""Query package: dashboard aggregation and list filtering."""

from family_tracker.queries.dashboard import (
    CategoryTotal,
    DashboardSummary,
    DateRange,
    MemberContribution,
    Summary,
    TrendBucket,
    build_dashboard,
    category_expense_totals,
    filter_by_range,
    member_contributions,
    summarize,
    trend_series,
)
from family_tracker.queries.filters import (
    HOME_MEMBER_FILTER,
    SortOrder,
    TransactionFilter,
    apply_filter,
    categories_for_type,
    sort_transactions,
)

__all__ = [
    "CategoryTotal",
    "DashboardSummary",
    "DateRange",
    "MemberContribution",
    "Summary",
    "TrendBucket",
    "build_dashboard",
    "category_expense_totals",
    "filter_by_range",
    "member_contributions",
    "summarize",
    "trend_series",
    "HOME_MEMBER_FILTER",
    "SortOrder",
    "TransactionFilter",
    "apply_filter",
    "categories_for_type",
    "sort_transactions",
]
