from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import ValidationError
from models import AlertTier
from schemas import BudgetIn, ExpenseIn
from services import (
    BudgetService,
    ExpenseService,
    ReconciliationService,
    alert_tier_for,
)


def _add_expense(
    session: Session, owner: str, cents: int, category: str, when: datetime
):
    return ExpenseService(session, owner).create(
        ExpenseIn(amount_cents=cents, category=category, occurred_on=when)
    )


def test_single_month_summary_reports_remaining_and_yellow_tier() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        BudgetService(session, "alice").upsert(
            BudgetIn(category="Food", month="2025-03", amount_cents=100_000)
        )
        _add_expense(session, "alice", 60_000, "Food", datetime(2025, 3, 3, 9, 0))
        _add_expense(session, "alice", 35_000, "Food", datetime(2025, 3, 31, 22, 15))

        results = ReconciliationService(session, "alice").reconcile(
            "2025-03-01", "2025-03-31"
        )

        assert len(results) == 1
        row = results[0]
        assert row.category == "Food"
        assert row.month == "2025-03"
        assert row.budgeted_cents == 100_000
        assert row.actual_spend_cents == 95_000
        assert row.remaining_cents == 5_000
        assert row.utilization_percent == 95.0
        assert row.alert_tier == AlertTier.yellow
        assert row.as_dict() == {
            "category": "Food",
            "budgeted": 1000.0,
            "actualSpend": 950.0,
            "month": "2025-03",
            "remaining": 50.0,
            "percentageUsed": 95.0,
            "alertStatus": "yellow",
        }


@pytest.mark.parametrize(
    "percent,tier",
    [
        (0, AlertTier.green),
        (79.99, AlertTier.green),
        (80, AlertTier.yellow),
        (99.99, AlertTier.yellow),
        (100, AlertTier.red),
        (250.5, AlertTier.red),
    ],
)
def test_alert_tier_thresholds(percent, tier) -> None:
    assert alert_tier_for(percent) == tier


def test_overspent_category_is_red_with_negative_remaining() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        BudgetService(session, "alice").upsert(
            BudgetIn(category="Fun", month="2025-03", amount_cents=30_000)
        )
        _add_expense(session, "alice", 10_001, "Fun", datetime(2025, 3, 2))
        _add_expense(session, "alice", 10_000, "Fun", datetime(2025, 3, 3))
        _add_expense(session, "alice", 10_000, "Fun", datetime(2025, 3, 4))

        (row,) = ReconciliationService(session, "alice").reconcile(
            "2025-03-01", "2025-03-31"
        )
        assert row.remaining_cents == -1
        assert row.utilization_percent == round(30_001 / 30_000 * 100, 2)
        assert row.alert_tier == AlertTier.red


def test_zero_budget_reports_zero_utilization() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        BudgetService(session, "alice").upsert(
            BudgetIn(category="Gifts", month="2025-03", amount_cents=0)
        )
        _add_expense(session, "alice", 2_500, "Gifts", datetime(2025, 3, 9))

        (row,) = ReconciliationService(session, "alice").reconcile(
            "2025-03-01", "2025-03-31"
        )
        assert row.budgeted_cents == 0
        assert row.actual_spend_cents == 2_500
        assert row.remaining_cents == -2_500
        assert row.utilization_percent == 0
        assert row.alert_tier == AlertTier.green


def test_multi_month_range_sums_budgets_and_reports_last_month_seen() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        budgets = BudgetService(session, "alice")
        budgets.upsert(BudgetIn(category="Food", month="2025-01", amount_cents=10_000))
        budgets.upsert(BudgetIn(category="Rent", month="2025-01", amount_cents=50_000))
        budgets.upsert(BudgetIn(category="Food", month="2025-02", amount_cents=20_000))
        budgets.upsert(BudgetIn(category="Food", month="2025-04", amount_cents=99_000))

        _add_expense(session, "alice", 12_000, "Food", datetime(2025, 1, 20))
        _add_expense(session, "alice", 6_000, "Food", datetime(2025, 2, 27))

        results = ReconciliationService(session, "alice").reconcile(
            "2025-01-10", "2025-02-28"
        )

        assert [r.category for r in results] == ["Food", "Rent"]
        food, rent = results
        assert food.budgeted_cents == 30_000
        assert food.month == "2025-02"
        assert food.actual_spend_cents == 18_000
        assert food.utilization_percent == 60.0
        assert rent.budgeted_cents == 50_000
        assert rent.actual_spend_cents == 0
        assert rent.month == "2025-01"


def test_spending_uses_exact_range_not_whole_months() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        BudgetService(session, "alice").upsert(
            BudgetIn(category="Food", month="2025-03", amount_cents=10_000)
        )
        _add_expense(session, "alice", 1_000, "Food", datetime(2025, 3, 15, 23, 59))
        _add_expense(session, "alice", 4_000, "Food", datetime(2025, 3, 16, 0, 0))
        _add_expense(session, "alice", 2_000, "Food", datetime(2025, 2, 28, 12, 0))

        (row,) = ReconciliationService(session, "alice").reconcile(
            "2025-03-01", "2025-03-15"
        )
        assert row.actual_spend_cents == 1_000
        assert row.budgeted_cents == 10_000


def test_unbudgeted_categories_and_other_owners_are_ignored() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        BudgetService(session, "alice").upsert(
            BudgetIn(category="Food", month="2025-03", amount_cents=10_000)
        )
        BudgetService(session, "bob").upsert(
            BudgetIn(category="Travel", month="2025-03", amount_cents=10_000)
        )
        _add_expense(session, "alice", 3_000, "Travel", datetime(2025, 3, 5))
        _add_expense(session, "bob", 7_000, "Food", datetime(2025, 3, 5))

        results = ReconciliationService(session, "alice").reconcile(
            "2025-03-01", "2025-03-31"
        )
        assert [(r.category, r.actual_spend_cents) for r in results] == [("Food", 0)]


def test_reconcile_requires_both_dates() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ReconciliationService(session, "alice")
        with pytest.raises(ValidationError):
            service.reconcile(None, "2025-03-31")
        with pytest.raises(ValidationError):
            service.reconcile("2025-03-01", "")
