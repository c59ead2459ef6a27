"""expenses and monthly budgets

Revision ID: 202503010900
Revises:
Create Date: 2025-03-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202503010900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner", sa.String(length=64), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("occurred_on", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )
    op.create_index(
        "ix_expenses_owner_occurred", "expenses", ["owner", "occurred_on"]
    )
    op.create_index(
        "ix_expenses_owner_category_occurred",
        "expenses",
        ["owner", "category", "occurred_on"],
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner", sa.String(length=64), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("month", sa.String(length=7), nullable=False),
        sa.Column("limit_amount_cents", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "owner", "category", "month", name="uq_budget_owner_category_month"
        ),
        sa.CheckConstraint(
            "limit_amount_cents >= 0", name="ck_budgets_amount_positive"
        ),
    )
    op.create_index("ix_budgets_owner_month", "budgets", ["owner", "month"])


def downgrade():
    op.drop_index("ix_budgets_owner_month", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_expenses_owner_category_occurred", table_name="expenses")
    op.drop_index("ix_expenses_owner_occurred", table_name="expenses")
    op.drop_table("expenses")
