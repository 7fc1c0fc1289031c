import datetime as dt
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class EntryType(str, Enum):
    expense = "expense"
    income = "income"


class CategoryKind(str, Enum):
    expense = "expense"
    income = "income"
    both = "both"


class CutoffType(str, Enum):
    calendar = "calendar"
    cutoff = "cutoff"


class PaymentMethod(str, Enum):
    cash = "現金"
    credit_card = "クレカ"
    bank_debit = "銀行引落"
    qr = "QR"
    other = "その他"


PAYMENT_METHOD_ENUM = SAEnum(
    PaymentMethod,
    name="paymentmethod",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Month(Base, TimestampMixin):
    __tablename__ = "months"

    user_id: Mapped[str] = mapped_column(String(34), primary_key=True)
    month_key: Mapped[str] = mapped_column(String(7), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    monthly_budget: Mapped[Optional[int]] = mapped_column(Integer)
    cutoff_type: Mapped[CutoffType] = mapped_column(
        SAEnum(CutoffType), default=CutoffType.calendar, nullable=False
    )
    cutoff_day: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        CheckConstraint("version >= 0", name="ck_months_version_non_negative"),
        CheckConstraint(
            "cutoff_day IS NULL OR (cutoff_day >= 1 AND cutoff_day <= 28)",
            name="ck_months_cutoff_day_range",
        ),
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    category_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(34), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[CategoryKind] = mapped_column(
        SAEnum(CategoryKind), default=CategoryKind.expense, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
        Index("ix_categories_user_sort", "user_id", "sort_order"),
    )


class Entry(Base, TimestampMixin):
    __tablename__ = "entries"

    entry_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(34), nullable=False)
    month_key: Mapped[str] = mapped_column(String(7), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    type: Mapped[EntryType] = mapped_column(SAEnum(EntryType), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[str] = mapped_column(
        ForeignKey("categories.category_id"), nullable=False
    )
    memo: Mapped[Optional[str]] = mapped_column(Text)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        PAYMENT_METHOD_ENUM
    )

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id", "month_key"],
            ["months.user_id", "months.month_key"],
            name="fk_entries_month",
        ),
        Index("ix_entries_user_month_date", "user_id", "month_key", "date"),
        Index("ix_entries_user_month_type", "user_id", "month_key", "type"),
        CheckConstraint("amount > 0", name="ck_entries_amount_positive"),
    )


class DailyBudget(Base, TimestampMixin):
    __tablename__ = "daily_budgets"

    user_id: Mapped[str] = mapped_column(String(34), primary_key=True)
    month_key: Mapped[str] = mapped_column(String(7), primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    daily_budget_override: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id", "month_key"],
            ["months.user_id", "months.month_key"],
            name="fk_daily_budgets_month",
        ),
        Index("ix_daily_budgets_user_month", "user_id", "month_key"),
        CheckConstraint(
            "daily_budget_override >= 0",
            name="ck_daily_budgets_override_non_negative",
        ),
    )
