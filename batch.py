"""Compiling a save request into one atomic batch of statements.

The batch always starts with two statements: one that creates the month row
if it is missing and one that bumps its version, guarded on the version the
client sent. The guard is the only concurrency control: a batch whose guard
touched no rows lost the race and is rolled back as a whole.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import delete, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Executable

from errors import StorageFault, VersionConflict
from models import CutoffType, DailyBudget, Entry, Month
from operations import (
    CreateEntry,
    DeleteDailyBudget,
    DeleteEntry,
    Operation,
    SaveRequest,
    UpdateEntry,
    UpsertDailyBudget,
)

logger = logging.getLogger(__name__)

ENSURE_MONTH = "ensure_month"
BUMP_VERSION = "bump_version"


@dataclass(frozen=True)
class Statement:
    label: str
    clause: Executable


@dataclass
class Batch:
    statements: list[Statement] = field(default_factory=list)
    guard_index: int = 1

    def add(self, label: str, clause: Executable) -> None:
        self.statements.append(Statement(label, clause))

    @property
    def labels(self) -> list[str]:
        return [stmt.label for stmt in self.statements]


@dataclass(frozen=True)
class StatementResult:
    label: str
    rowcount: int


def _insert_for(dialect_name: str):
    if dialect_name == "sqlite":
        return sqlite.insert
    if dialect_name == "postgresql":
        return postgresql.insert
    raise ValueError(f"Unsupported database dialect: {dialect_name}")


class BatchCompiler:
    def __init__(
        self,
        user_id: str,
        dialect_name: str,
        *,
        now: Optional[datetime] = None,
        new_id: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.user_id = user_id
        self.insert = _insert_for(dialect_name)
        self.now = now or datetime.utcnow()
        self.new_id = new_id

    def compile(self, request: SaveRequest) -> Batch:
        batch = Batch()
        batch.add(ENSURE_MONTH, self._ensure_month(request.month_key))
        batch.add(
            BUMP_VERSION,
            self._bump_version(request.month_key, request.expected_version),
        )
        batch.guard_index = len(batch.statements) - 1
        for op in request.operations:
            label, clause = self._compile_op(request.month_key, op)
            batch.add(label, clause)
        return batch

    def _compile_op(self, month_key: str, op: Operation) -> tuple[str, Executable]:
        if isinstance(op, CreateEntry):
            return "create_entry", self._create_entry(month_key, op)
        if isinstance(op, UpdateEntry):
            return "update_entry", self._update_entry(month_key, op)
        if isinstance(op, DeleteEntry):
            return "delete_entry", self._delete_entry(month_key, op)
        if isinstance(op, UpsertDailyBudget):
            return "upsert_daily_budget", self._upsert_daily_budget(month_key, op)
        if isinstance(op, DeleteDailyBudget):
            return "delete_daily_budget", self._delete_daily_budget(month_key, op)
        raise TypeError(f"Unsupported operation: {op!r}")

    def _ensure_month(self, month_key: str) -> Executable:
        return (
            self.insert(Month)
            .values(
                user_id=self.user_id,
                month_key=month_key,
                version=0,
                cutoff_type=CutoffType.calendar,
                created_at=self.now,
                updated_at=self.now,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "month_key"])
        )

    def _bump_version(self, month_key: str, expected_version: int) -> Executable:
        return (
            update(Month)
            .where(
                Month.user_id == self.user_id,
                Month.month_key == month_key,
                Month.version == expected_version,
            )
            .values(version=Month.version + 1, updated_at=self.now)
        )

    def _create_entry(self, month_key: str, op: CreateEntry) -> Executable:
        return self.insert(Entry).values(
            entry_id=op.entry_id or self.new_id(),
            user_id=self.user_id,
            month_key=month_key,
            date=op.date,
            type=op.type,
            amount=op.amount,
            category_id=op.category_id,
            memo=op.memo,
            payment_method=op.payment_method,
            created_at=self.now,
            updated_at=self.now,
        )

    def _update_entry(self, month_key: str, op: UpdateEntry) -> Executable:
        return (
            update(Entry)
            .where(
                Entry.entry_id == op.entry_id,
                Entry.user_id == self.user_id,
                Entry.month_key == month_key,
            )
            .values(
                date=op.date,
                type=op.type,
                amount=op.amount,
                category_id=op.category_id,
                memo=op.memo,
                payment_method=op.payment_method,
                updated_at=self.now,
            )
        )

    def _delete_entry(self, month_key: str, op: DeleteEntry) -> Executable:
        return (
            delete(Entry)
            .where(
                Entry.entry_id == op.entry_id,
                Entry.user_id == self.user_id,
                Entry.month_key == month_key,
            )
        )

    def _upsert_daily_budget(self, month_key: str, op: UpsertDailyBudget) -> Executable:
        stmt = self.insert(DailyBudget).values(
            user_id=self.user_id,
            month_key=month_key,
            date=op.date,
            daily_budget_override=op.daily_budget_override,
            created_at=self.now,
            updated_at=self.now,
        )
        return stmt.on_conflict_do_update(
            index_elements=["user_id", "month_key", "date"],
            set_={
                "daily_budget_override": stmt.excluded.daily_budget_override,
                "updated_at": stmt.excluded.updated_at,
            },
        )

    def _delete_daily_budget(self, month_key: str, op: DeleteDailyBudget) -> Executable:
        return (
            delete(DailyBudget)
            .where(
                DailyBudget.user_id == self.user_id,
                DailyBudget.month_key == month_key,
                DailyBudget.date == op.date,
            )
        )


def compile_batch(
    request: SaveRequest, user_id: str, dialect_name: str, **kwargs
) -> Batch:
    return BatchCompiler(user_id, dialect_name, **kwargs).compile(request)


Inspector = Callable[[list[StatementResult]], None]


class BatchExecutor:
    """Runs a batch inside one transaction of ``session``.

    ``inspect`` sees the per-statement row counts before anything is
    committed; raising from it rolls the whole batch back. It is also called
    with the partial results when a statement fails, so a lost version race
    is still reported as such.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def apply(self, batch: Batch, inspect: Inspector) -> list[StatementResult]:
        results: list[StatementResult] = []
        try:
            connection = self.session.connection()
            for stmt in batch.statements:
                result = connection.execute(stmt.clause)
                results.append(StatementResult(stmt.label, result.rowcount))
        except (SQLAlchemyError, OverflowError) as exc:
            self.session.rollback()
            logger.warning(
                f"batch_failed: statement={len(results)} "
                f"label={batch.statements[len(results)].label} error={type(exc).__name__}"
            )
            inspect(results)
            raise StorageFault() from exc

        try:
            inspect(results)
        except Exception:
            self.session.rollback()
            raise
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageFault() from exc
        return results


def detect_conflict(
    batch: Batch, results: list[StatementResult], request: SaveRequest
) -> None:
    """Raise ``VersionConflict`` when the version guard matched no row.

    Results that stop before the guard carry no verdict.
    """
    if len(results) <= batch.guard_index:
        return
    if results[batch.guard_index].rowcount == 0:
        raise VersionConflict(request.month_key, request.expected_version)
