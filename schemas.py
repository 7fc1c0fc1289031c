from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from models import EntryType, PaymentMethod

MONTH_KEY_PATTERN = r"^[0-9]{4}-(0[1-9]|1[0-2])$"
DATE_PATTERN = r"^[0-9]{4}-(0[1-9]|1[0-2])-(0[1-9]|[12][0-9]|3[01])$"

# Largest value the Integer columns hold on every supported database.
MAX_STORED_INT = 2_147_483_647

MonthKeyStr = Annotated[StrictStr, Field(pattern=MONTH_KEY_PATTERN)]
DateStr = Annotated[StrictStr, Field(pattern=DATE_PATTERN)]
EntryIdStr = Annotated[StrictStr, Field(min_length=1)]


class EntryIn(BaseModel):
    date: DateStr
    type: EntryType
    amount: StrictInt = Field(..., gt=0, le=MAX_STORED_INT)
    category_id: StrictStr = Field(..., min_length=1)
    memo: Optional[StrictStr] = None
    payment_method: Optional[PaymentMethod] = None


class CreateEntryIn(EntryIn):
    entry_id: Optional[StrictStr] = None


class UpdateEntryIn(EntryIn):
    entry_id: EntryIdStr


class DailyBudgetIn(BaseModel):
    date: DateStr
    daily_budget_override: StrictInt = Field(..., ge=0, le=MAX_STORED_INT)


class SaveOpsIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    create_entries: Optional[list[CreateEntryIn]] = None
    update_entries: Optional[list[UpdateEntryIn]] = None
    delete_entry_ids: Optional[list[EntryIdStr]] = None
    upsert_daily_budgets: Optional[list[DailyBudgetIn]] = None
    delete_daily_budget_dates: Optional[list[DateStr]] = None


class SaveRequestIn(BaseModel):
    month_key: MonthKeyStr
    expected_version: StrictInt = Field(..., ge=0, lt=MAX_STORED_INT)
    ops: SaveOpsIn


class AppliedOut(BaseModel):
    created_entries: int = 0
    updated_entries: int = 0
    deleted_entries: int = 0
    upserted_daily_budgets: int = 0
    deleted_daily_budgets: int = 0


class SaveResponseOut(BaseModel):
    ok: Literal[True] = True
    month_key: str
    new_version: int
    applied: AppliedOut
