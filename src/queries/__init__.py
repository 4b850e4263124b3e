"""
Query package.

Read-only views over stored obligations and occurrences: the shared
temporal window policy, dashboard aggregation and display formatting.
"""

from src.queries.window import (
    INCOME_PREVIEW_WINDOW_DAYS,
    UPCOMING_WINDOW_DAYS,
    badge_count,
    due_status,
    filter_upcoming,
    income_preview,
    is_overdue,
    is_upcoming,
)
from src.queries.formatting import (
    format_amount,
    format_compact,
    format_money,
    parse_amount,
)
from src.queries.dashboard import (
    DashboardSummary,
    UpcomingItem,
    build_dashboard_summary,
    cashflow_series,
)

__all__ = [
    # Window policy
    "INCOME_PREVIEW_WINDOW_DAYS",
    "UPCOMING_WINDOW_DAYS",
    "badge_count",
    "due_status",
    "filter_upcoming",
    "income_preview",
    "is_overdue",
    "is_upcoming",
    # Formatting
    "format_amount",
    "format_compact",
    "format_money",
    "parse_amount",
    # Dashboard
    "DashboardSummary",
    "UpcomingItem",
    "build_dashboard_summary",
    "cashflow_series",
]
