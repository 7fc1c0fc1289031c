"""monthly ledger schema

Revision ID: 202602010900
Revises:
Create Date: 2026-02-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202602010900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "months",
        sa.Column("user_id", sa.String(length=34), primary_key=True),
        sa.Column("month_key", sa.String(length=7), primary_key=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("monthly_budget", sa.Integer()),
        sa.Column(
            "cutoff_type",
            sa.Enum("calendar", "cutoff", name="cutofftype"),
            nullable=False,
            server_default="calendar",
        ),
        sa.Column("cutoff_day", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("version >= 0", name="ck_months_version_non_negative"),
        sa.CheckConstraint(
            "cutoff_day IS NULL OR (cutoff_day >= 1 AND cutoff_day <= 28)",
            name="ck_months_cutoff_day_range",
        ),
    )

    op.create_table(
        "categories",
        sa.Column("category_id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=34), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("expense", "income", "both", name="categorykind"),
            nullable=False,
            server_default="expense",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )
    op.create_index(
        "ix_categories_user_sort", "categories", ["user_id", "sort_order"]
    )

    op.create_table(
        "entries",
        sa.Column("entry_id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=34), nullable=False),
        sa.Column("month_key", sa.String(length=7), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "type", sa.Enum("expense", "income", name="entrytype"), nullable=False
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "category_id",
            sa.String(length=64),
            sa.ForeignKey("categories.category_id"),
            nullable=False,
        ),
        sa.Column("memo", sa.Text()),
        sa.Column(
            "payment_method",
            sa.Enum("現金", "クレカ", "銀行引落", "QR", "その他", name="paymentmethod"),
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id", "month_key"],
            ["months.user_id", "months.month_key"],
            name="fk_entries_month",
        ),
        sa.CheckConstraint("amount > 0", name="ck_entries_amount_positive"),
    )
    op.create_index(
        "ix_entries_user_month_date", "entries", ["user_id", "month_key", "date"]
    )
    op.create_index(
        "ix_entries_user_month_type", "entries", ["user_id", "month_key", "type"]
    )

    op.create_table(
        "daily_budgets",
        sa.Column("user_id", sa.String(length=34), primary_key=True),
        sa.Column("month_key", sa.String(length=7), primary_key=True),
        sa.Column("date", sa.Date(), primary_key=True),
        sa.Column("daily_budget_override", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["user_id", "month_key"],
            ["months.user_id", "months.month_key"],
            name="fk_daily_budgets_month",
        ),
        sa.CheckConstraint(
            "daily_budget_override >= 0",
            name="ck_daily_budgets_override_non_negative",
        ),
    )
    op.create_index(
        "ix_daily_budgets_user_month", "daily_budgets", ["user_id", "month_key"]
    )


def downgrade():
    op.drop_index("ix_daily_budgets_user_month", table_name="daily_budgets")
    op.drop_table("daily_budgets")
    op.drop_index("ix_entries_user_month_type", table_name="entries")
    op.drop_index("ix_entries_user_month_date", table_name="entries")
    op.drop_table("entries")
    op.drop_index("ix_categories_user_sort", table_name="categories")
    op.drop_table("categories")
    op.drop_table("months")
