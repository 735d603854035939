"""move recurring incomes to templates

Revision ID: 202601120800
Revises: 202601050900
Create Date: 2026-01-12 08:00:00.000000

"""

from __future__ import annotations

from datetime import datetime

from alembic import op
import sqlalchemy as sa


revision = "202601120800"
down_revision = "202601050900"
branch_labels = None
depends_on = None


incomes = sa.table(
    "incomes",
    sa.column("id", sa.Integer()),
    sa.column("user_id", sa.Integer()),
    sa.column("source", sa.String()),
    sa.column("amount_cents", sa.Integer()),
    sa.column("category_id", sa.Integer()),
    sa.column("description", sa.Text()),
    sa.column("date", sa.Date()),
    sa.column("is_recurring", sa.Boolean()),
    sa.column("recurring_day", sa.Integer()),
)

recurring_incomes = sa.table(
    "recurring_incomes",
    sa.column("id", sa.Integer()),
    sa.column("user_id", sa.Integer()),
    sa.column("source", sa.String()),
    sa.column("amount_cents", sa.Integer()),
    sa.column("category_id", sa.Integer()),
    sa.column("description", sa.Text()),
    sa.column("recurring_day", sa.Integer()),
    sa.column("is_active", sa.Boolean()),
    sa.column("auto_create", sa.Boolean()),
    sa.column("start_date", sa.Date()),
    sa.column("created_at", sa.DateTime()),
    sa.column("updated_at", sa.DateTime()),
)


def upgrade() -> None:
    bind = op.get_bind()
    rows = bind.execute(
        sa.select(incomes).where(incomes.c.is_recurring == sa.true())
    ).all()

    now = datetime.utcnow()
    if rows:
        op.bulk_insert(
            recurring_incomes,
            [
                {
                    "user_id": row.user_id,
                    "source": row.source,
                    "amount_cents": row.amount_cents,
                    "category_id": row.category_id,
                    "description": row.description,
                    "recurring_day": row.recurring_day or 1,
                    "is_active": True,
                    "auto_create": True,
                    "start_date": row.date,
                    "created_at": now,
                    "updated_at": now,
                }
                for row in rows
            ],
        )
        bind.execute(
            sa.delete(incomes).where(incomes.c.id.in_([row.id for row in rows]))
        )

    with op.batch_alter_table("incomes") as batch_op:
        batch_op.drop_column("recurring_day")
        batch_op.drop_column("is_recurring")


def downgrade() -> None:
    with op.batch_alter_table("incomes") as batch_op:
        batch_op.add_column(
            sa.Column(
                "is_recurring",
                sa.Boolean(),
                nullable=False,
                server_default=sa.false(),
            )
        )
        batch_op.add_column(sa.Column("recurring_day", sa.Integer(), nullable=True))
