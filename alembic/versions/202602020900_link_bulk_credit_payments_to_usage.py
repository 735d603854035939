"""link bulk credit payments to their shared income usage

Revision ID: 202602020900
Revises: 202601120800
Create Date: 2026-02-02 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202602020900"
down_revision = "202601120800"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("credit_payments") as batch_op:
        batch_op.add_column(sa.Column("income_usage_id", sa.Integer(), nullable=True))
        batch_op.create_index(
            "ix_credit_payments_income_usage_id", ["income_usage_id"]
        )


def downgrade() -> None:
    with op.batch_alter_table("credit_payments") as batch_op:
        batch_op.drop_index("ix_credit_payments_income_usage_id")
        batch_op.drop_column("income_usage_id")
