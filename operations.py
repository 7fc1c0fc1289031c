"""Typed save operations.

A validated save request is a month key, the version the client last saw and
an ordered tuple of operations. Each operation kind is its own frozen
dataclass; ``Operation`` is the closed union of them and everything
downstream of validation works only with these types.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union

from models import EntryType, PaymentMethod


@dataclass(frozen=True)
class CreateEntry:
    entry_id: Optional[str]
    date: date
    type: EntryType
    amount: int
    category_id: str
    memo: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None


@dataclass(frozen=True)
class UpdateEntry:
    entry_id: str
    date: date
    type: EntryType
    amount: int
    category_id: str
    memo: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None


@dataclass(frozen=True)
class DeleteEntry:
    entry_id: str


@dataclass(frozen=True)
class UpsertDailyBudget:
    date: date
    daily_budget_override: int


@dataclass(frozen=True)
class DeleteDailyBudget:
    date: date


Operation = Union[
    CreateEntry, UpdateEntry, DeleteEntry, UpsertDailyBudget, DeleteDailyBudget
]


@dataclass(frozen=True)
class AppliedCounts:
    created_entries: int = 0
    updated_entries: int = 0
    deleted_entries: int = 0
    upserted_daily_budgets: int = 0
    deleted_daily_budgets: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "created_entries": self.created_entries,
            "updated_entries": self.updated_entries,
            "deleted_entries": self.deleted_entries,
            "upserted_daily_budgets": self.upserted_daily_budgets,
            "deleted_daily_budgets": self.deleted_daily_budgets,
        }


@dataclass(frozen=True)
class SaveRequest:
    month_key: str
    expected_version: int
    operations: tuple[Operation, ...] = field(default_factory=tuple)

    def of_kind(self, kind: type) -> list:
        return [op for op in self.operations if isinstance(op, kind)]

    @property
    def is_noop(self) -> bool:
        return not self.operations

    def category_ids(self) -> set[str]:
        return {
            op.category_id
            for op in self.operations
            if isinstance(op, (CreateEntry, UpdateEntry))
        }

    def applied_counts(self) -> AppliedCounts:
        return AppliedCounts(
            created_entries=len(self.of_kind(CreateEntry)),
            updated_entries=len(self.of_kind(UpdateEntry)),
            deleted_entries=len(self.of_kind(DeleteEntry)),
            upserted_daily_budgets=len(self.of_kind(UpsertDailyBudget)),
            deleted_daily_budgets=len(self.of_kind(DeleteDailyBudget)),
        )


@dataclass(frozen=True)
class SaveResult:
    month_key: str
    new_version: int
    applied: AppliedCounts
