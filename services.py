from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from csv_utils import export_expenses, format_amount
from errors import AuthorizationError, NotFoundError, StorageError, ValidationError
from models import AlertTier, Budget, Expense
from periods import (
    DateLike,
    month_bounds,
    month_token,
    parse_month_token,
    parse_timestamp,
    resolve_range,
)
from schemas import BudgetIn, ExpenseIn, ExpenseUpdate

logger = logging.getLogger(__name__)

YELLOW_THRESHOLD = 80
RED_THRESHOLD = 100


def cents_to_units(cents: int) -> float:
    return cents / 100


def _require_owner(owner: str) -> str:
    if not owner:
        raise ValidationError("Owner is required")
    return owner


@contextmanager
def _storage(session: Session, action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"storage_failure: action={action}")
        raise StorageError(f"Storage failure while trying to {action}") from exc


def alert_tier_for(utilization_percent: float) -> AlertTier:
    if utilization_percent >= RED_THRESHOLD:
        return AlertTier.red
    if utilization_percent >= YELLOW_THRESHOLD:
        return AlertTier.yellow
    return AlertTier.green


class ExpenseService:
    def __init__(self, session: Session, owner: str) -> None:
        self.session = session
        self.owner = _require_owner(owner)

    def list_by_owner(self) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.owner == self.owner)
            .order_by(Expense.occurred_on.desc(), Expense.id.desc())
        )
        with _storage(self.session, "list expenses"):
            return list(self.session.scalars(stmt).all())

    def get(self, expense_id: int) -> Expense:
        with _storage(self.session, "load expense"):
            expense = self.session.get(Expense, expense_id)
        if not expense:
            raise NotFoundError("Expense not found.")
        if expense.owner != self.owner:
            raise AuthorizationError("User not authorized.")
        return expense

    def create(self, data: ExpenseIn) -> Expense:
        expense = Expense(
            owner=self.owner,
            amount_cents=data.amount_cents,
            category=data.category,
            occurred_on=data.occurred_on,
            notes=data.notes,
        )
        with _storage(self.session, "create expense"):
            self.session.add(expense)
            self.session.commit()
            self.session.refresh(expense)
        logger.info(
            f"expense_created: owner={self.owner} id={expense.id} "
            f"category={expense.category} amount_cents={expense.amount_cents}"
        )
        return expense

    def merge_update(self, expense_id: int, patch: ExpenseUpdate) -> ExpenseIn:
        """Full replacement values for ``expense_id`` with ``patch`` applied.

        Fields left out of the patch keep their stored values. ``notes`` may be
        cleared by sending it explicitly as null.
        """
        expense = self.get(expense_id)
        notes = patch.notes if "notes" in patch.model_fields_set else expense.notes
        return ExpenseIn(
            amount_cents=(
                patch.amount_cents
                if patch.amount_cents is not None
                else expense.amount_cents
            ),
            category=patch.category or expense.category,
            occurred_on=patch.occurred_on or expense.occurred_on,
            notes=notes,
        )

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        expense.amount_cents = data.amount_cents
        expense.category = data.category
        expense.occurred_on = data.occurred_on
        expense.notes = data.notes
        with _storage(self.session, "update expense"):
            self.session.commit()
            self.session.refresh(expense)
        logger.info(f"expense_updated: owner={self.owner} id={expense.id}")
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        with _storage(self.session, "delete expense"):
            self.session.delete(expense)
            self.session.commit()
        logger.info(f"expense_deleted: owner={self.owner} id={expense_id}")

    def sum_by_category(self, start: datetime, end: datetime) -> dict[str, int]:
        stmt = (
            select(
                Expense.category,
                func.coalesce(func.sum(Expense.amount_cents), 0).label("spent"),
            )
            .where(
                Expense.owner == self.owner,
                Expense.occurred_on.between(start, end),
            )
            .group_by(Expense.category)
        )
        with _storage(self.session, "aggregate spending by category"):
            return {
                row.category: int(row.spent or 0)
                for row in self.session.execute(stmt)
            }

    def sum_total(
        self,
        start: datetime,
        end: datetime,
        *,
        category: Optional[str] = None,
        exclude_id: Optional[int] = None,
    ) -> int:
        stmt = select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(
            Expense.owner == self.owner,
            Expense.occurred_on.between(start, end),
        )
        if category is not None:
            stmt = stmt.where(Expense.category == category)
        if exclude_id is not None:
            stmt = stmt.where(Expense.id != exclude_id)
        with _storage(self.session, "aggregate spending"):
            return int(self.session.execute(stmt).scalar_one() or 0)

    def daily_totals(self, start: datetime, end: datetime) -> list[tuple[str, int]]:
        day = func.date(Expense.occurred_on).label("day")
        stmt = (
            select(day, func.coalesce(func.sum(Expense.amount_cents), 0).label("spent"))
            .where(
                Expense.owner == self.owner,
                Expense.occurred_on.between(start, end),
            )
            .group_by(day)
            .order_by(day)
        )
        with _storage(self.session, "aggregate daily spending"):
            return [
                (str(row.day), int(row.spent or 0))
                for row in self.session.execute(stmt)
            ]

    def export_csv(self) -> str:
        return export_expenses(self.list_by_owner())


class BudgetService:
    def __init__(self, session: Session, owner: str) -> None:
        self.session = session
        self.owner = _require_owner(owner)

    def find_by_owner_and_months(self, months: list[str]) -> list[Budget]:
        if not months:
            return []
        stmt = (
            select(Budget)
            .where(Budget.owner == self.owner, Budget.month.in_(months))
            .order_by(Budget.month.asc(), Budget.id.asc())
        )
        with _storage(self.session, "load budgets"):
            return list(self.session.scalars(stmt).all())

    def find_one(self, category: str, month: str) -> Optional[Budget]:
        stmt = select(Budget).where(
            Budget.owner == self.owner,
            Budget.category == category,
            Budget.month == month,
        )
        with _storage(self.session, "load budget"):
            return self.session.scalar(stmt)

    def list_for_month(self, month: str) -> list[Budget]:
        parse_month_token(month)
        stmt = (
            select(Budget)
            .where(Budget.owner == self.owner, Budget.month == month)
            .order_by(Budget.category.asc())
        )
        with _storage(self.session, "list budgets"):
            return list(self.session.scalars(stmt).all())

    def upsert(self, data: BudgetIn) -> Budget:
        with _storage(self.session, "save budget"):
            existing = self.find_one(data.category, data.month)
            if existing is None:
                budget = Budget(
                    owner=self.owner,
                    category=data.category,
                    month=data.month,
                    limit_amount_cents=data.amount_cents,
                )
                self.session.add(budget)
                try:
                    self.session.commit()
                except IntegrityError:
                    # lost an insert race on (owner, category, month)
                    self.session.rollback()
                    existing = self.find_one(data.category, data.month)
                    if existing is None:
                        raise
                else:
                    self.session.refresh(budget)
                    existing = budget
            if existing.limit_amount_cents != data.amount_cents:
                existing.limit_amount_cents = data.amount_cents
                self.session.commit()
                self.session.refresh(existing)
        logger.info(
            f"budget_saved: owner={self.owner} category={data.category} "
            f"month={data.month} limit_cents={data.amount_cents}"
        )
        return existing

    def delete_one(self, category: str, month: str) -> bool:
        if not category or not category.strip():
            raise ValidationError("Category and month are required to delete a budget.")
        parse_month_token(month)
        stmt = delete(Budget).where(
            Budget.owner == self.owner,
            Budget.category == category.strip(),
            Budget.month == month,
        )
        with _storage(self.session, "delete budget"):
            result = self.session.execute(stmt)
            self.session.commit()
        deleted = (result.rowcount or 0) > 0
        logger.info(
            f"budget_deleted: owner={self.owner} category={category} "
            f"month={month} existed={deleted}"
        )
        return deleted


@dataclass(frozen=True)
class ReconciliationResult:
    category: str
    month: str
    budgeted_cents: int
    actual_spend_cents: int
    remaining_cents: int
    utilization_percent: float
    alert_tier: AlertTier

    def as_dict(self) -> dict[str, object]:
        return {
            "category": self.category,
            "budgeted": cents_to_units(self.budgeted_cents),
            "actualSpend": cents_to_units(self.actual_spend_cents),
            "month": self.month,
            "remaining": cents_to_units(self.remaining_cents),
            "percentageUsed": self.utilization_percent,
            "alertStatus": self.alert_tier.value,
        }


class ReconciliationService:
    """Budgeted vs. actual spend per category over a date range.

    Budgets are matched by month token, spending by the full timestamp range.
    When a category has budgets in several months of the range their limits
    are summed, and the month reported is the one of the last budget read
    (budgets are read in month order). Results keep the order in which each
    category was first seen.
    """

    def __init__(self, session: Session, owner: str) -> None:
        self.session = session
        self.owner = _require_owner(owner)
        self.budgets = BudgetService(session, owner)
        self.expenses = ExpenseService(session, owner)

    def reconcile(
        self, start_date: Optional[DateLike], end_date: Optional[DateLike]
    ) -> list[ReconciliationResult]:
        period = resolve_range(start_date, end_date)
        budgets = self.budgets.find_by_owner_and_months(period.months)
        spending = self.expenses.sum_by_category(period.start, period.end)

        budgeted: dict[str, int] = {}
        reported_month: dict[str, str] = {}
        for budget in budgets:
            budgeted[budget.category] = (
                budgeted.get(budget.category, 0) + budget.limit_amount_cents
            )
            reported_month[budget.category] = budget.month

        results: list[ReconciliationResult] = []
        for category, budgeted_cents in budgeted.items():
            actual = spending.get(category, 0)
            if budgeted_cents > 0:
                utilization = round(actual / budgeted_cents * 100, 2)
            else:
                utilization = 0
            results.append(
                ReconciliationResult(
                    category=category,
                    month=reported_month[category],
                    budgeted_cents=budgeted_cents,
                    actual_spend_cents=actual,
                    remaining_cents=budgeted_cents - actual,
                    utilization_percent=utilization,
                    alert_tier=alert_tier_for(utilization),
                )
            )
        return results


@dataclass(frozen=True)
class BudgetDecision:
    allowed: bool
    reason: Optional[str] = None
    category: Optional[str] = None
    limit_cents: Optional[int] = None
    current_spending_cents: Optional[int] = None


class BudgetGuard:
    """Advises whether an expense would push its category over the monthly budget.

    The decision is read-only and carries no override notion; callers decide
    whether to honour it. Checking and writing are separate steps, so two
    concurrent submissions can both pass before either is stored.
    """

    def __init__(self, session: Session, owner: str) -> None:
        self.session = session
        self.owner = _require_owner(owner)
        self.budgets = BudgetService(session, owner)
        self.expenses = ExpenseService(session, owner)

    def check_budget(
        self,
        category: str,
        proposed_amount_cents: int,
        expense_date: DateLike,
        exclude_expense_id: Optional[int] = None,
    ) -> BudgetDecision:
        if proposed_amount_cents < 0:
            raise ValidationError("Amount must be non-negative")
        occurred_on = parse_timestamp(expense_date)
        month = month_token(occurred_on)

        budget = self.budgets.find_one(category, month)
        if budget is None:
            return BudgetDecision(allowed=True)

        start, end = month_bounds(occurred_on)
        current = self.expenses.sum_total(
            start, end, category=category, exclude_id=exclude_expense_id
        )
        if current + proposed_amount_cents > budget.limit_amount_cents:
            logger.info(
                f"budget_guard_rejected: owner={self.owner} category={category} "
                f"month={month} limit_cents={budget.limit_amount_cents} "
                f"current_cents={current} proposed_cents={proposed_amount_cents}"
            )
            return BudgetDecision(
                allowed=False,
                reason=(
                    f'This expense exceeds your budget for "{category}". '
                    f"Limit: {format_amount(budget.limit_amount_cents)}, "
                    f"Current Spending: {format_amount(current)}."
                ),
                category=category,
                limit_cents=budget.limit_amount_cents,
                current_spending_cents=current,
            )
        return BudgetDecision(allowed=True)


class SpendingSummaryService:
    def __init__(self, session: Session, owner: str) -> None:
        self.expenses = ExpenseService(session, owner)

    def summary(
        self, start_date: Optional[DateLike], end_date: Optional[DateLike]
    ) -> dict[str, object]:
        period = resolve_range(start_date, end_date)
        by_category = self.expenses.sum_by_category(period.start, period.end)
        trends = self.expenses.daily_totals(period.start, period.end)
        ranked = sorted(by_category.items(), key=lambda item: item[1], reverse=True)
        return {
            "totalSpendInPeriod": cents_to_units(sum(by_category.values())),
            "spendByCategory": [
                {"category": category, "total": cents_to_units(total)}
                for category, total in ranked
            ],
            "spendingTrends": [
                {"date": day, "total": cents_to_units(total)} for day, total in trends
            ],
        }
