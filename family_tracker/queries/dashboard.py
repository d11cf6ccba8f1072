"""
Dashboard Aggregation

DESIGN DECISION: Aggregation is DETERMINISTIC and pure.
Every function takes the already-loaded snapshot plus "now" and returns
new values. Nothing here touches the store, so the dashboard can be
recomputed on every render.

The date range compares each transaction's calendar date with the
calendar of `now`; there is no time-of-day component anywhere.
"""

import datetime as dt
from collections import defaultdict
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union

from pydantic import BaseModel, Field

from family_tracker.models.records import (
    Category,
    FamilyMember,
    LedgerSnapshot,
    Transaction,
    TransactionType,
)


ZERO = Decimal("0")


class DateRange(str, Enum):
    """Window the dashboard covers."""
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


class Summary(BaseModel):
    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO
    balance: Decimal = ZERO


class CategoryTotal(BaseModel):
    category_id: str
    name: str
    color: str
    total: Decimal


class MemberContribution(BaseModel):
    member_id: str
    name: str
    net: Decimal = Field(
        default=ZERO,
        description="Income minus expense attributed to the member"
    )


class TrendBucket(BaseModel):
    """Income and expense sums for one day or one month."""
    label: str
    start: dt.date
    income: Decimal = ZERO
    expense: Decimal = ZERO


class DashboardSummary(BaseModel):
    """Everything the dashboard page renders."""
    date_range: DateRange
    summary: Summary
    category_totals: list[CategoryTotal] = Field(default_factory=list)
    member_contributions: list[MemberContribution] = Field(default_factory=list)
    trend: list[TrendBucket] = Field(default_factory=list)
    transaction_count: int = 0


def _today(now: Union[dt.datetime, dt.date]) -> dt.date:
    return now.date() if isinstance(now, dt.datetime) else now


def filter_by_range(
    transactions: Iterable[Transaction],
    date_range: DateRange,
    now: Union[dt.datetime, dt.date],
) -> list[Transaction]:
    """Transactions in the current month or year of `now`, or all of them."""
    today = _today(now)
    if date_range == DateRange.MONTH:
        return [
            t for t in transactions
            if t.date.year == today.year and t.date.month == today.month
        ]
    if date_range == DateRange.YEAR:
        return [t for t in transactions if t.date.year == today.year]
    return list(transactions)


def summarize(transactions: Iterable[Transaction]) -> Summary:
    income = ZERO
    expense = ZERO
    for t in transactions:
        if t.type == TransactionType.INCOME:
            income += t.amount
        else:
            expense += t.amount
    return Summary(total_income=income, total_expense=expense, balance=income - expense)


def category_expense_totals(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
) -> list[CategoryTotal]:
    """
    Expense totals per category, largest first.

    Transactions whose category no longer exists are left out here; they
    still count towards the overall expense total.
    """
    by_id = {c.id: c for c in categories if c.id}
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for t in transactions:
        if t.type == TransactionType.EXPENSE and t.category_id in by_id:
            totals[t.category_id] += t.amount

    result = [
        CategoryTotal(
            category_id=category_id,
            name=by_id[category_id].name,
            color=by_id[category_id].color,
            total=total,
        )
        for category_id, total in totals.items()
    ]
    result.sort(key=lambda c: c.total, reverse=True)
    return result


def member_contributions(
    transactions: Iterable[Transaction],
    members: Iterable[FamilyMember],
) -> list[MemberContribution]:
    """Net contribution of every known member; zero when they have none."""
    net: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for t in transactions:
        if t.member_id:
            net[t.member_id] += t.signed_amount

    return [
        MemberContribution(member_id=m.id, name=m.name, net=net.get(m.id, ZERO))
        for m in members
        if m.id
    ]


def _month_label(day: dt.date) -> str:
    return day.strftime("%b")


def _day_label(day: dt.date) -> str:
    return f"{day.strftime('%b')} {day.day}"


def trend_series(
    transactions: Iterable[Transaction],
    date_range: DateRange,
    now: Union[dt.datetime, dt.date],
) -> list[TrendBucket]:
    """
    Income/expense buckets in chronological order.

    For the year range the buckets are calendar months over every
    transaction in the current year. Otherwise they are calendar days over
    the range-filtered transactions. Empty periods produce no bucket.
    """
    by_month = date_range == DateRange.YEAR
    selected = filter_by_range(transactions, date_range, now)

    buckets: dict[dt.date, TrendBucket] = {}
    for t in selected:
        start = t.date.replace(day=1) if by_month else t.date
        bucket = buckets.get(start)
        if bucket is None:
            label = _month_label(start) if by_month else _day_label(start)
            bucket = buckets[start] = TrendBucket(label=label, start=start)
        if t.type == TransactionType.INCOME:
            bucket.income += t.amount
        else:
            bucket.expense += t.amount

    return [buckets[start] for start in sorted(buckets)]


def build_dashboard(
    snapshot: LedgerSnapshot,
    date_range: DateRange = DateRange.MONTH,
    now: Optional[Union[dt.datetime, dt.date]] = None,
) -> DashboardSummary:
    """Compute every dashboard figure for one render."""
    now = now or dt.datetime.now()
    filtered = filter_by_range(snapshot.transactions, date_range, now)
    return DashboardSummary(
        date_range=date_range,
        summary=summarize(filtered),
        category_totals=category_expense_totals(filtered, snapshot.categories),
        member_contributions=member_contributions(filtered, snapshot.members),
        trend=trend_series(snapshot.transactions, date_range, now),
        transaction_count=len(filtered),
    )
