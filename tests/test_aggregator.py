from datetime import date

import pytest

from models import Transaction, TransactionType, User
from services import ReportAggregator


def _txn(user_id, kind, amount, category, day, title="Item"):
    return Transaction(
        user_id=user_id,
        title=title,
        type=kind,
        amount_cents=amount,
        category=category,
        date=day,
    )


@pytest.fixture
def user(session):
    user = User(email="ana@example.com", name="Ana")
    session.add(user)
    session.commit()
    return user


def test_scenario_income_and_single_expense(session, user, insights):
    session.add_all(
        [
            _txn(user.id, TransactionType.expense, 500, "food", date(2026, 9, 3)),
            _txn(user.id, TransactionType.income, 10000, "salary", date(2026, 9, 1)),
        ]
    )
    session.commit()

    summary = ReportAggregator(session, insights).generate(
        user.id, date(2026, 9, 1), date(2026, 9, 30)
    )

    assert summary is not None
    assert summary.income == 10000
    assert summary.expenses == 500
    assert summary.balance == 9500
    assert summary.savings_rate == 95
    assert [(c.name, c.amount, c.percent) for c in summary.top_categories] == [
        ("food", 500, 100)
    ]
    assert summary.period == "September 1–30, 2026"
    assert summary.insights == ["Keep it up."]


def test_empty_window_returns_none(session, user, insights):
    session.add(_txn(user.id, TransactionType.expense, 500, "food", date(2026, 8, 31)))
    session.commit()

    result = ReportAggregator(session, insights).generate(
        user.id, date(2026, 9, 1), date(2026, 9, 30)
    )

    assert result is None
    assert insights.requests == []


def test_zero_income_has_zero_savings_rate(session, user, insights):
    session.add(_txn(user.id, TransactionType.expense, 1234, "rent", date(2026, 9, 2)))
    session.commit()

    summary = ReportAggregator(session, insights).generate(
        user.id, date(2026, 9, 1), date(2026, 9, 30)
    )

    assert summary.savings_rate == 0
    assert summary.balance == -1234


def test_negative_balance_has_negative_savings_rate(session, user, insights):
    session.add_all(
        [
            _txn(user.id, TransactionType.income, 1000, "salary", date(2026, 9, 1)),
            _txn(user.id, TransactionType.expense, 1500, "travel", date(2026, 9, 9)),
        ]
    )
    session.commit()

    summary = ReportAggregator(session, insights).generate(
        user.id, date(2026, 9, 1), date(2026, 9, 30)
    )

    assert summary.savings_rate == -50


def test_category_percentages_sum_to_hundred(session, user, insights):
    amounts = {"food": 333, "rent": 333, "fun": 334}
    for name, amount in amounts.items():
        session.add(
            _txn(user.id, TransactionType.expense, amount, name, date(2026, 9, 5))
        )
    session.commit()

    summary = ReportAggregator(session, insights).generate(
        user.id, date(2026, 9, 1), date(2026, 9, 30)
    )

    total = sum(c.percent for c in summary.top_categories)
    assert total == pytest.approx(100, abs=0.05)


def test_top_categories_ranked_with_name_tiebreak_and_capped(session, user, insights):
    rows = [
        ("utilities", 100),
        ("books", 300),
        ("groceries", 700),
        ("apps", 300),
        ("transport", 200),
        ("gifts", 50),
        ("groceries", 100),
    ]
    for category, amount in rows:
        session.add(
            _txn(user.id, TransactionType.expense, amount, category, date(2026, 9, 10))
        )
    session.commit()

    summary = ReportAggregator(session, insights).generate(
        user.id, date(2026, 9, 1), date(2026, 9, 30)
    )

    assert [c.name for c in summary.top_categories] == [
        "groceries",
        "apps",
        "books",
        "transport",
        "utilities",
    ]
    assert summary.top_categories[0].amount == 800
    assert summary.expenses == 1750


def test_window_bounds_are_inclusive_and_scoped_to_user(session, user, insights):
    other = User(email="ben@example.com", name="Ben")
    session.add(other)
    session.flush()
    session.add_all(
        [
            _txn(user.id, TransactionType.income, 100, "salary", date(2026, 9, 1)),
            _txn(user.id, TransactionType.income, 200, "salary", date(2026, 9, 30)),
            _txn(user.id, TransactionType.income, 400, "salary", date(2026, 10, 1)),
            _txn(other.id, TransactionType.income, 800, "salary", date(2026, 9, 15)),
        ]
    )
    session.commit()

    summary = ReportAggregator(session, insights).generate(
        user.id, date(2026, 9, 1), date(2026, 9, 30)
    )

    assert summary.income == 300
    assert summary.top_categories == []


def test_insight_request_carries_aggregates(session, user, insights):
    session.add_all(
        [
            _txn(user.id, TransactionType.income, 10000, "salary", date(2026, 9, 1)),
            _txn(user.id, TransactionType.expense, 2500, "food", date(2026, 9, 2)),
        ]
    )
    session.commit()

    ReportAggregator(session, insights).generate(
        user.id, date(2026, 9, 1), date(2026, 9, 30)
    )

    request = insights.requests[0]
    assert request.income_cents == 10000
    assert request.expense_cents == 2500
    assert request.savings_rate == 75
    assert request.categories == {"food": (2500, 100)}


class _ExplodingInsights:
    def generate_insights(self, request):
        raise TimeoutError("model timed out")


class _GarbageInsights:
    def generate_insights(self, request):
        return {"not": "a list"}


@pytest.mark.parametrize("generator", [_ExplodingInsights(), _GarbageInsights()])
def test_insight_failures_degrade_to_empty_list(session, user, generator):
    session.add(_txn(user.id, TransactionType.income, 100, "salary", date(2026, 9, 1)))
    session.commit()

    summary = ReportAggregator(session, generator).generate(
        user.id, date(2026, 9, 1), date(2026, 9, 30)
    )

    assert summary is not None
    assert summary.insights == []
