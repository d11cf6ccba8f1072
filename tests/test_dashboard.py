"""
Tests for dashboard aggregation and transaction filters.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from family_tracker.models import (
    Category,
    FamilyMember,
    LedgerSnapshot,
    Transaction,
    TransactionType,
)
from family_tracker.queries import (
    HOME_MEMBER_FILTER,
    DateRange,
    SortOrder,
    TransactionFilter,
    apply_filter,
    build_dashboard,
    categories_for_type,
    category_expense_totals,
    filter_by_range,
    member_contributions,
    summarize,
    trend_series,
)


def tx(day: date, amount, type=TransactionType.EXPENSE, category_id="food", **kwargs):
    return Transaction(
        id=kwargs.pop("id", None),
        type=type,
        amount=Decimal(str(amount)),
        category_id=category_id,
        date=day,
        **kwargs,
    )


CATEGORIES = [
    Category(id="salary", name="Salary", type=TransactionType.INCOME),
    Category(id="food", name="Food", color="#f97316"),
    Category(id="bills", name="Bills", color="#ef4444"),
]
MEMBERS = [FamilyMember(id="m1", name="Asha"), FamilyMember(id="m2", name="Ravi")]


class TestSummary:
    """Tests for totals and the date range."""

    def test_year_example(self):
        """Income 100 and expenses 30 + 20 across two months."""
        transactions = [
            tx(date(2024, 1, 10), 100, TransactionType.INCOME, "salary"),
            tx(date(2024, 1, 15), 30),
            tx(date(2024, 2, 3), 20),
        ]
        snapshot = LedgerSnapshot(transactions=transactions, categories=CATEGORIES)
        dashboard = build_dashboard(snapshot, DateRange.YEAR, datetime(2024, 3, 1))

        assert dashboard.summary.total_income == Decimal("100")
        assert dashboard.summary.total_expense == Decimal("50")
        assert dashboard.summary.balance == Decimal("50")

        assert [(b.label, b.income, b.expense) for b in dashboard.trend] == [
            ("Jan", Decimal("100"), Decimal("30")),
            ("Feb", Decimal("0"), Decimal("20")),
        ]

    def test_month_range(self):
        transactions = [
            tx(date(2024, 3, 1), 5),
            tx(date(2024, 2, 29), 7),
            tx(date(2023, 3, 15), 9),
        ]
        selected = filter_by_range(transactions, DateRange.MONTH, date(2024, 3, 20))
        assert [t.amount for t in selected] == [Decimal("5")]

    def test_all_range(self):
        transactions = [tx(date(2020, 1, 1), 1), tx(date(2024, 1, 1), 2)]
        assert len(filter_by_range(transactions, DateRange.ALL, date(2024, 6, 1))) == 2

    def test_empty_ledger(self):
        summary = summarize([])
        assert summary.total_income == summary.total_expense == summary.balance == 0

    def test_negative_balance(self):
        summary = summarize([
            tx(date(2024, 1, 1), 10, TransactionType.INCOME, "salary"),
            tx(date(2024, 1, 2), 25),
        ])
        assert summary.balance == Decimal("-15")


class TestBreakdowns:
    """Tests for category totals and member contributions."""

    def test_category_totals_sorted_largest_first(self):
        totals = category_expense_totals([
            tx(date(2024, 1, 1), 10, category_id="food"),
            tx(date(2024, 1, 2), 40, category_id="bills"),
            tx(date(2024, 1, 3), 5, category_id="food"),
            tx(date(2024, 1, 4), 999, TransactionType.INCOME, "salary"),
        ], CATEGORIES)
        assert [(c.name, c.total) for c in totals] == [
            ("Bills", Decimal("40")),
            ("Food", Decimal("15")),
        ]
        assert totals[0].color == "#ef4444"

    def test_deleted_category_left_out_of_breakdown(self):
        transactions = [tx(date(2024, 1, 1), 10, category_id="gone")]
        assert category_expense_totals(transactions, CATEGORIES) == []
        assert summarize(transactions).total_expense == Decimal("10")

    def test_member_contributions_are_net(self):
        contributions = member_contributions([
            tx(date(2024, 1, 1), 100, TransactionType.INCOME, "salary", member_id="m1"),
            tx(date(2024, 1, 2), 30, member_id="m1"),
            tx(date(2024, 1, 3), 50),
        ], MEMBERS)
        assert [(c.name, c.net) for c in contributions] == [
            ("Asha", Decimal("70")),
            ("Ravi", Decimal("0")),
        ]


class TestTrend:
    """Tests for trend buckets."""

    def test_month_range_buckets_by_day(self):
        transactions = [
            tx(date(2024, 1, 5), 10),
            tx(date(2024, 1, 5), 2),
            tx(date(2024, 1, 2), 3, TransactionType.INCOME, "salary"),
        ]
        buckets = trend_series(transactions, DateRange.MONTH, date(2024, 1, 20))
        assert [(b.label, b.income, b.expense) for b in buckets] == [
            ("Jan 2", Decimal("3"), Decimal("0")),
            ("Jan 5", Decimal("0"), Decimal("12")),
        ]

    def test_empty_periods_have_no_bucket(self):
        transactions = [tx(date(2024, 1, 5), 1), tx(date(2024, 4, 5), 1)]
        buckets = trend_series(transactions, DateRange.YEAR, date(2024, 6, 1))
        assert [b.label for b in buckets] == ["Jan", "Apr"]


class TestTransactionFilter:
    """Tests for the transaction list controls."""

    def setup_method(self):
        self.transactions = [
            tx(date(2024, 1, 1), 10, description="Weekly groceries", id="a"),
            tx(date(2024, 1, 3), 50, description="Electricity", category_id="bills",
               member_id="m1", id="b"),
            tx(date(2024, 1, 2), 200, TransactionType.INCOME, "salary", id="c"),
        ]

    def ids(self, criteria):
        return [t.id for t in apply_filter(self.transactions, criteria)]

    def test_default_is_newest_first(self):
        assert self.ids(TransactionFilter()) == ["b", "c", "a"]

    def test_search_is_case_insensitive(self):
        assert self.ids(TransactionFilter(search="GROCER")) == ["a"]

    def test_filter_by_category_and_type(self):
        assert self.ids(TransactionFilter(category_id="bills")) == ["b"]
        assert self.ids(TransactionFilter(type=TransactionType.INCOME)) == ["c"]

    def test_home_member_filter(self):
        assert self.ids(TransactionFilter(member_id=HOME_MEMBER_FILTER)) == ["c", "a"]
        assert self.ids(TransactionFilter(member_id="m1")) == ["b"]

    def test_sort_by_amount(self):
        assert self.ids(TransactionFilter(sort=SortOrder.AMOUNT_DESC)) == ["c", "b", "a"]
        assert self.ids(TransactionFilter(sort=SortOrder.AMOUNT_ASC)) == ["a", "b", "c"]

    def test_categories_for_type(self):
        income = categories_for_type(CATEGORIES, TransactionType.INCOME)
        assert [c.name for c in income] == ["Salary"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
