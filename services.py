from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from batch import BatchExecutor, StatementResult, compile_batch, detect_conflict
from errors import StorageFault, UnknownCategory, VersionConflict
from models import Category, CategoryKind, DailyBudget, Entry, Month
from operations import AppliedCounts, SaveRequest, SaveResult
from periods import Clock, ensure_editable, system_clock

logger = logging.getLogger(__name__)


class CategoryReferenceChecker:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def check(self, category_ids: set[str]) -> None:
        """Reject the batch if any id is not one of the user's categories.

        All of the user's category ids are fetched in a single query, however
        many entries the batch holds. An empty set issues no query at all.
        """
        if not category_ids:
            return
        try:
            known = set(
                self.session.scalars(
                    select(Category.category_id).where(
                        Category.user_id == self.user_id
                    )
                )
            )
        except SQLAlchemyError as exc:
            raise StorageFault() from exc
        missing = sorted(category_ids - known)
        if missing:
            logger.info(
                f"save_rejected: user={self.user_id} unknown_categories={missing}"
            )
            raise UnknownCategory(missing[0])


class MonthlySaveService:
    def __init__(
        self,
        session: Session,
        user_id: str,
        *,
        clock: Optional[Clock] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.clock = clock or system_clock()
        self.now = now

    def save(self, request: SaveRequest) -> SaveResult:
        ensure_editable(request.month_key, self.clock)

        if request.is_noop:
            return SaveResult(
                month_key=request.month_key,
                new_version=request.expected_version,
                applied=AppliedCounts(),
            )

        CategoryReferenceChecker(self.session, self.user_id).check(
            request.category_ids()
        )

        dialect_name = self.session.get_bind().dialect.name
        batch = compile_batch(request, self.user_id, dialect_name, now=self.now)

        def inspect(results: list[StatementResult]) -> None:
            try:
                detect_conflict(batch, results, request)
            except VersionConflict:
                logger.warning(
                    f"save_conflict: user={self.user_id} month_key={request.month_key} "
                    f"expected_version={request.expected_version}"
                )
                raise

        BatchExecutor(self.session).apply(batch, inspect)

        result = SaveResult(
            month_key=request.month_key,
            new_version=request.expected_version + 1,
            applied=request.applied_counts(),
        )
        logger.info(
            f"save_applied: user={self.user_id} month_key={result.month_key} "
            f"new_version={result.new_version} statements={len(batch.statements)}"
        )
        return result


class MonthlyDatasetService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def dataset(self, month_key: str) -> dict[str, object]:
        month = self.session.get(Month, (self.user_id, month_key))
        categories = CategoryService(self.session, self.user_id).list_all()
        entries = self.session.scalars(
            select(Entry)
            .where(Entry.user_id == self.user_id, Entry.month_key == month_key)
            .order_by(Entry.date.asc(), Entry.created_at.asc())
        ).all()
        daily_budgets = self.session.scalars(
            select(DailyBudget)
            .where(
                DailyBudget.user_id == self.user_id,
                DailyBudget.month_key == month_key,
            )
            .order_by(DailyBudget.date.asc())
        ).all()
        return {
            "month": _month_row(month) if month else None,
            "categories": [_category_row(c) for c in categories],
            "entries": [_entry_row(e) for e in entries],
            "daily_budgets": [_daily_budget_row(d) for d in daily_budgets],
        }


class CategoryService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.sort_order.is_(None), Category.sort_order, Category.name)
        )
        return list(self.session.scalars(stmt))

    def create(
        self,
        category_id: str,
        name: str,
        kind: CategoryKind = CategoryKind.expense,
        sort_order: Optional[int] = None,
    ) -> Category:
        name = name.strip()
        if not name:
            raise ValueError("Category name cannot be empty")
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id, Category.name == name
            )
        )
        if existing:
            raise ValueError("Category with this name already exists")
        if self.session.get(Category, category_id):
            raise ValueError("Category id already in use")
        category = Category(
            category_id=category_id,
            user_id=self.user_id,
            name=name,
            kind=kind,
            sort_order=sort_order,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category


def _timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _month_row(month: Month) -> dict[str, object]:
    return {
        "user_id": month.user_id,
        "month_key": month.month_key,
        "version": month.version,
        "monthly_budget": month.monthly_budget,
        "cutoff_type": month.cutoff_type.value,
        "cutoff_day": month.cutoff_day,
        "updated_at": _timestamp(month.updated_at),
    }


def _category_row(category: Category) -> dict[str, object]:
    return {
        "category_id": category.category_id,
        "user_id": category.user_id,
        "name": category.name,
        "kind": category.kind.value,
        "is_active": category.is_active,
        "sort_order": category.sort_order,
        "created_at": _timestamp(category.created_at),
        "updated_at": _timestamp(category.updated_at),
    }


def _entry_row(entry: Entry) -> dict[str, object]:
    return {
        "entry_id": entry.entry_id,
        "user_id": entry.user_id,
        "month_key": entry.month_key,
        "date": entry.date.isoformat(),
        "type": entry.type.value,
        "amount": entry.amount,
        "category_id": entry.category_id,
        "memo": entry.memo,
        "payment_method": entry.payment_method.value if entry.payment_method else None,
        "created_at": _timestamp(entry.created_at),
        "updated_at": _timestamp(entry.updated_at),
    }


def _daily_budget_row(budget: DailyBudget) -> dict[str, object]:
    return {
        "user_id": budget.user_id,
        "month_key": budget.month_key,
        "date": budget.date.isoformat(),
        "daily_budget_override": budget.daily_budget_override,
        "created_at": _timestamp(budget.created_at),
        "updated_at": _timestamp(budget.updated_at),
    }
