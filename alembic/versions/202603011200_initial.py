"""initial schema

Revision ID: 202603011200
Revises:
Create Date: 2026-03-01 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202603011200"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum("checking", "savings", "investment", "other", name="accounttype"),
            nullable=False,
        ),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="categorytype"), nullable=False
        ),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("icon", sa.String(length=50)),
        sa.Column("color", sa.String(length=9)),
        sa.Column(
            "is_variable", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "profile_id", "type", "parent_id", "name", name="uq_category_scope_name"
        ),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("target_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("monthly_allocation", sa.Numeric(12, 2)),
        sa.Column("target_date", sa.Date()),
        sa.Column("source_account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("linked_account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column(
            "current_accumulated",
            sa.Numeric(12, 2),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "status",
            sa.Enum(
                "active", "completed", "on_hold", "archived", name="projectstatus"
            ),
            nullable=False,
        ),
        *_timestamps(),
        sa.CheckConstraint("target_amount >= 0", name="ck_project_target_positive"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("projects.id")),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "recurrence_rule",
            sa.Enum("weekly", "monthly", "quarterly", "yearly", name="recurrencerule"),
        ),
        sa.Column("recurrence_end_date", sa.Date()),
        *_timestamps(),
    )
    op.create_index(
        "ix_transactions_profile_date", "transactions", ["profile_id", "date"]
    )
    op.create_index(
        "ix_transactions_account_date", "transactions", ["account_id", "date"]
    )
    op.create_index(
        "ix_transactions_category_date", "transactions", ["category_id", "date"]
    )

    op.create_table(
        "transaction_month_overrides",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("profile_id", sa.Integer(), nullable=False),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("override_amount", sa.Numeric(12, 2), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "transaction_id", "year", "month", name="uq_override_transaction_month"
        ),
        sa.CheckConstraint(
            "month >= 1 AND month <= 12", name="ck_override_month_range"
        ),
    )
    op.create_index(
        "ix_override_profile_month",
        "transaction_month_overrides",
        ["profile_id", "year", "month"],
    )


def downgrade():
    op.drop_index(
        "ix_override_profile_month", table_name="transaction_month_overrides"
    )
    op.drop_table("transaction_month_overrides")
    op.drop_index("ix_transactions_category_date", table_name="transactions")
    op.drop_index("ix_transactions_account_date", table_name="transactions")
    op.drop_index("ix_transactions_profile_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("projects")
    op.drop_table("categories")
    op.drop_table("accounts")
