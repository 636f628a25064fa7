"""track the last expense generated from each monthly expense

Revision ID: 202312080930
Revises: 202312010900
Create Date: 2023-12-08 09:30:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202312080930"
down_revision = "202312010900"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("monthly_expenses") as batch_op:
        batch_op.add_column(sa.Column("last_applied_at", sa.DateTime(), nullable=True))
        # No ON DELETE rule: the application clears the link before deleting.
        batch_op.add_column(
            sa.Column("last_applied_expense_id", sa.Integer(), nullable=True)
        )
        batch_op.create_foreign_key(
            "fk_monthly_expenses_last_applied_expense",
            "expenses",
            ["last_applied_expense_id"],
            ["id"],
        )
        batch_op.create_check_constraint(
            "ck_monthly_expenses_link_pair",
            "(last_applied_at IS NULL) = (last_applied_expense_id IS NULL)",
        )
        batch_op.create_index(
            "ix_monthly_expenses_last_expense",
            ["user_id", "last_applied_expense_id"],
        )


def downgrade() -> None:
    with op.batch_alter_table("monthly_expenses") as batch_op:
        batch_op.drop_index("ix_monthly_expenses_last_expense")
        batch_op.drop_constraint("ck_monthly_expenses_link_pair", type_="check")
        batch_op.drop_constraint(
            "fk_monthly_expenses_last_applied_expense", type_="foreignkey"
        )
        batch_op.drop_column("last_applied_expense_id")
        batch_op.drop_column("last_applied_at")
