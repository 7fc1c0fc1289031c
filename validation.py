"""Request validation for the monthly save endpoint.

``validate_save_request`` never raises for bad input: it returns ``Ok`` with a
typed ``SaveRequest`` or ``Err`` with a message naming the first offending
field. Nothing here touches storage.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Generic, TypeVar, Union

from pydantic import ValidationError

from operations import (
    CreateEntry,
    DeleteDailyBudget,
    DeleteEntry,
    Operation,
    SaveRequest,
    UpdateEntry,
    UpsertDailyBudget,
)
from periods import date_in_month
from schemas import SaveRequestIn

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    reason: str


Result = Union[Ok[T], Err]


FIELD_RULES = {
    "month_key": "must be in YYYY-MM format",
    "expected_version": "must be a non-negative integer below 2147483647",
    "date": "must be YYYY-MM-DD",
    "type": "must be 'expense' or 'income'",
    "amount": "must be a positive integer up to 2147483647",
    "category_id": "must be a non-empty string",
    "entry_id": "must be a non-empty string",
    "memo": "must be a string or null",
    "payment_method": "must be one of 現金, クレカ, 銀行引落, QR, その他 or null",
    "daily_budget_override": "must be a non-negative integer up to 2147483647",
    "delete_entry_ids": "must contain non-empty strings",
    "delete_daily_budget_dates": "must contain YYYY-MM-DD strings",
}


def _format_loc(loc: tuple) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def describe_error(error: dict[str, Any]) -> str:
    loc = tuple(error.get("loc", ()))
    kind = error.get("type", "")
    if not loc:
        return "Request body must be a JSON object."
    path = _format_loc(loc)
    if kind == "missing":
        return f"{path} is required."
    if kind == "extra_forbidden":
        return f"{path} is not a supported operation."
    if kind == "list_type":
        return f"{path} must be an array."
    if kind in ("model_type", "model_attributes_type", "dict_type"):
        return f"{path} must be an object."
    field_name = next((part for part in reversed(loc) if isinstance(part, str)), "")
    rule = FIELD_RULES.get(field_name)
    if rule:
        return f"{path} {rule}; got {error.get('input')!r}."
    return f"{path}: {error.get('msg', 'invalid value')}."


def _parse_day(path: str, value: str, month_key: str) -> Result[date]:
    try:
        day = date.fromisoformat(value)
    except ValueError:
        return Err(f"{path}: {value} is not a valid calendar date.")
    if not date_in_month(value, month_key):
        return Err(f"{path}: {value} does not match month_key {month_key}.")
    return Ok(day)


def validate_save_request(body: Any) -> Result[SaveRequest]:
    try:
        parsed = SaveRequestIn.model_validate(body)
    except ValidationError as exc:
        return Err(describe_error(exc.errors()[0]))

    month_key = parsed.month_key
    ops = parsed.ops
    operations: list[Operation] = []

    for index, item in enumerate(ops.create_entries or []):
        day = _parse_day(f"ops.create_entries[{index}].date", item.date, month_key)
        if isinstance(day, Err):
            return day
        operations.append(
            CreateEntry(
                entry_id=item.entry_id or None,
                date=day.value,
                type=item.type,
                amount=item.amount,
                category_id=item.category_id,
                memo=item.memo,
                payment_method=item.payment_method,
            )
        )

    for index, item in enumerate(ops.update_entries or []):
        day = _parse_day(f"ops.update_entries[{index}].date", item.date, month_key)
        if isinstance(day, Err):
            return day
        operations.append(
            UpdateEntry(
                entry_id=item.entry_id,
                date=day.value,
                type=item.type,
                amount=item.amount,
                category_id=item.category_id,
                memo=item.memo,
                payment_method=item.payment_method,
            )
        )

    operations.extend(DeleteEntry(entry_id) for entry_id in ops.delete_entry_ids or [])

    for index, item in enumerate(ops.upsert_daily_budgets or []):
        day = _parse_day(
            f"ops.upsert_daily_budgets[{index}].date", item.date, month_key
        )
        if isinstance(day, Err):
            return day
        operations.append(UpsertDailyBudget(day.value, item.daily_budget_override))

    for index, value in enumerate(ops.delete_daily_budget_dates or []):
        day = _parse_day(f"ops.delete_daily_budget_dates[{index}]", value, month_key)
        if isinstance(day, Err):
            return day
        operations.append(DeleteDailyBudget(day.value))

    return Ok(
        SaveRequest(
            month_key=month_key,
            expected_version=parsed.expected_version,
            operations=tuple(operations),
        )
    )
