"""initial schema

Revision ID: 202601050900
Revises:
Create Date: 2026-01-05 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202601050900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _source_columns():
    return [
        sa.Column(
            "source_type",
            sa.Enum("cash", "income", "deposit", name="paymentsourcetype"),
            nullable=False,
            server_default="cash",
        ),
        sa.Column(
            "source_income_id", sa.Integer(), sa.ForeignKey("incomes.id"), nullable=True
        ),
        sa.Column(
            "source_deposit_id", sa.Integer(), sa.ForeignKey("deposits.id"), nullable=True
        ),
        sa.Column(
            "deposit_transaction_id",
            sa.Integer(),
            sa.ForeignKey("deposit_transactions.id"),
            nullable=True,
        ),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="categorytype"), nullable=False
        ),
        sa.Column("color", sa.String(length=7)),
        sa.Column("archived_at", sa.DateTime()),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_category_user_type_name"
        ),
    )

    op.create_table(
        "recurring_incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("source", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True
        ),
        sa.Column("description", sa.Text()),
        sa.Column("recurring_day", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "auto_create", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column("last_created_year", sa.Integer()),
        sa.Column("last_created_month", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint(
            "recurring_day >= 1 AND recurring_day <= 31",
            name="ck_recurring_income_day_range",
        ),
        sa.CheckConstraint("amount_cents >= 0", name="ck_recurring_income_amount"),
    )
    op.create_index(
        "ix_recurring_income_user_active",
        "recurring_incomes",
        ["user_id", "is_active"],
    )

    # is_recurring / recurring_day are the pre-template way of marking
    # recurring income; the next revision moves them into recurring_incomes.
    op.create_table(
        "incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("source", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True
        ),
        sa.Column("description", sa.Text()),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("recurring_day", sa.Integer()),
        sa.Column(
            "is_auto_created", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "recurring_income_id",
            sa.Integer(),
            sa.ForeignKey("recurring_incomes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("occurrence_year", sa.Integer()),
        sa.Column("occurrence_month", sa.Integer()),
        *_timestamps(),
        sa.UniqueConstraint(
            "recurring_income_id",
            "occurrence_year",
            "occurrence_month",
            name="uq_income_template_occurrence",
        ),
        sa.CheckConstraint("amount_cents >= 0", name="ck_income_amount_positive"),
    )
    op.create_index("ix_incomes_user_date", "incomes", ["user_id", "date"])

    op.create_table(
        "deposits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("bank_name", sa.String(length=200), nullable=False),
        sa.Column("account_number", sa.String(length=100), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("current_balance_cents", sa.Integer(), nullable=False),
        sa.Column(
            "interest_rate_bps", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column(
            "type",
            sa.Enum("fixed", "savings", "investment", "spending", name="deposittype"),
            nullable=False,
        ),
        sa.Column(
            "auto_renewal", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "status",
            sa.Enum("active", "matured", "closed", name="depositstatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("description", sa.String(length=500)),
        sa.Column("last_interest_accrued", sa.Date()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_deposit_amount"),
        sa.CheckConstraint("current_balance_cents >= 0", name="ck_deposit_balance"),
        sa.CheckConstraint(
            "interest_rate_bps >= 0 AND interest_rate_bps <= 10000",
            name="ck_deposit_rate_range",
        ),
    )
    op.create_index("ix_deposits_user_status", "deposits", ["user_id", "status"])

    op.create_table(
        "deposit_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "deposit_id", sa.Integer(), sa.ForeignKey("deposits.id"), nullable=False
        ),
        sa.Column(
            "type",
            sa.Enum(
                "deposit", "withdrawal", "interest", name="deposittransactiontype"
            ),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(length=500)),
        sa.Column(
            "income_id", sa.Integer(), sa.ForeignKey("incomes.id"), nullable=True
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_deposit_txn_amount"),
    )
    op.create_index(
        "ix_deposit_txn_user_deposit_date",
        "deposit_transactions",
        ["user_id", "deposit_id", "transaction_date"],
    )

    op.create_table(
        "monthly_expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("planned_amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "actual_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "status",
            sa.Enum("planned", "paid", "overdue", name="expensestatus"),
            nullable=False,
            server_default="planned",
        ),
        sa.Column("description", sa.String(length=500)),
        sa.Column(
            "source_income_id", sa.Integer(), sa.ForeignKey("incomes.id"), nullable=True
        ),
        sa.Column(
            "storage_deposit_id",
            sa.Integer(),
            sa.ForeignKey("deposits.id"),
            nullable=True,
        ),
        *_timestamps(),
        sa.CheckConstraint("planned_amount_cents >= 0", name="ck_expense_planned"),
        sa.CheckConstraint("actual_amount_cents >= 0", name="ck_expense_actual"),
    )
    op.create_index(
        "ix_monthly_expenses_user_due", "monthly_expenses", ["user_id", "due_date"]
    )
    op.create_index(
        "ix_monthly_expenses_user_status", "monthly_expenses", ["user_id", "status"]
    )

    op.create_table(
        "credits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("bank_name", sa.String(length=200)),
        sa.Column(
            "type",
            sa.Enum("credit", "loan", "installment", name="credittype"),
            nullable=False,
            server_default="credit",
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("current_balance_cents", sa.Integer(), nullable=False),
        sa.Column(
            "interest_rate_bps", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "is_old_credit", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("initial_debt_cents", sa.Integer()),
        sa.Column("monthly_payment_cents", sa.Integer(), nullable=False),
        sa.Column("monthly_payment_day", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "paid", "overdue", "cancelled", name="creditstatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("description", sa.String(length=500)),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_credit_amount"),
        sa.CheckConstraint("current_balance_cents >= 0", name="ck_credit_balance"),
        sa.CheckConstraint(
            "monthly_payment_day >= 1 AND monthly_payment_day <= 31",
            name="ck_credit_payment_day",
        ),
    )
    op.create_index("ix_credits_user_status", "credits", ["user_id", "status"])

    op.create_table(
        "credit_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "credit_id", sa.Integer(), sa.ForeignKey("credits.id"), nullable=False
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("principal_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("interest_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("paid", "pending", "overdue", "cancelled", name="paymentstatus"),
            nullable=False,
            server_default="paid",
        ),
        sa.Column("notes", sa.String(length=500)),
        *_source_columns(),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_credit_payment_amount"),
    )
    op.create_index(
        "ix_credit_payments_user_date", "credit_payments", ["user_id", "payment_date"]
    )

    op.create_table(
        "rent_properties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("address", sa.String(length=300), nullable=False),
        sa.Column("owner_name", sa.String(length=200), nullable=False),
        sa.Column("rent_amount_cents", sa.Integer(), nullable=False),
        sa.Column("deposit_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column(
            "status",
            sa.Enum("active", "completed", "cancelled", name="rentstatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column(
            "utilities_type",
            sa.Enum("included", "fixed", "variable", name="utilitiestype"),
            nullable=False,
            server_default="variable",
        ),
        sa.Column("utilities_amount_cents", sa.Integer()),
        sa.Column("description", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("rent_amount_cents >= 0", name="ck_rent_amount"),
    )
    op.create_index(
        "ix_rent_properties_user_status", "rent_properties", ["user_id", "status"]
    )

    op.create_table(
        "rent_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "property_id",
            sa.Integer(),
            sa.ForeignKey("rent_properties.id"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("paid", "pending", "overdue", "cancelled", name="paymentstatus"),
            nullable=False,
            server_default="paid",
        ),
        sa.Column(
            "payment_type",
            sa.Enum("rent", "utilities", "deposit", "other", name="rentpaymenttype"),
            nullable=False,
        ),
        sa.Column("notes", sa.String(length=500)),
        *_source_columns(),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_rent_payment_amount"),
    )
    op.create_index(
        "ix_rent_payments_user_date", "rent_payments", ["user_id", "payment_date"]
    )

    op.create_table(
        "debts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("type", sa.Enum("owe", "owed", name="debttype"), nullable=False),
        sa.Column("person", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("current_balance_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=500)),
        sa.Column("due_date", sa.Date()),
        sa.Column(
            "status",
            sa.Enum("active", "paid", name="debtstatus"),
            nullable=False,
            server_default="active",
        ),
        *_timestamps(),
        sa.CheckConstraint("current_balance_cents >= 0", name="ck_debt_balance"),
        sa.CheckConstraint(
            "current_balance_cents <= amount_cents", name="ck_debt_balance_le_amount"
        ),
    )
    op.create_index("ix_debts_user_status", "debts", ["user_id", "status"])

    op.create_table(
        "debt_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("debt_id", sa.Integer(), sa.ForeignKey("debts.id"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(length=500)),
        *_timestamps(),
    )

    op.create_table(
        "income_usages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "income_id", sa.Integer(), sa.ForeignKey("incomes.id"), nullable=False
        ),
        sa.Column("used_cents", sa.Integer(), nullable=False),
        sa.Column(
            "usage_type",
            sa.Enum("deposit", "credit", "rent", "expense", "other", name="usagetype"),
            nullable=False,
            server_default="other",
        ),
        sa.Column("description", sa.String(length=500)),
        sa.Column("usage_date", sa.Date(), nullable=False),
        sa.Column(
            "deposit_transaction_id",
            sa.Integer(),
            sa.ForeignKey("deposit_transactions.id"),
            nullable=True,
        ),
        sa.Column(
            "credit_payment_id",
            sa.Integer(),
            sa.ForeignKey("credit_payments.id"),
            nullable=True,
        ),
        sa.Column(
            "rent_payment_id",
            sa.Integer(),
            sa.ForeignKey("rent_payments.id"),
            nullable=True,
        ),
        sa.Column(
            "monthly_expense_id",
            sa.Integer(),
            sa.ForeignKey("monthly_expenses.id"),
            nullable=True,
        ),
        *_timestamps(),
        sa.CheckConstraint("used_cents >= 0", name="ck_income_usage_positive"),
    )
    op.create_index(
        "ix_income_usage_user_income", "income_usages", ["user_id", "income_id"]
    )


def downgrade():
    op.drop_index("ix_income_usage_user_income", table_name="income_usages")
    op.drop_table("income_usages")
    op.drop_table("debt_payments")
    op.drop_index("ix_debts_user_status", table_name="debts")
    op.drop_table("debts")
    op.drop_index("ix_rent_payments_user_date", table_name="rent_payments")
    op.drop_table("rent_payments")
    op.drop_index("ix_rent_properties_user_status", table_name="rent_properties")
    op.drop_table("rent_properties")
    op.drop_index("ix_credit_payments_user_date", table_name="credit_payments")
    op.drop_table("credit_payments")
    op.drop_index("ix_credits_user_status", table_name="credits")
    op.drop_table("credits")
    op.drop_index("ix_monthly_expenses_user_status", table_name="monthly_expenses")
    op.drop_index("ix_monthly_expenses_user_due", table_name="monthly_expenses")
    op.drop_table("monthly_expenses")
    op.drop_index("ix_deposit_txn_user_deposit_date", table_name="deposit_transactions")
    op.drop_table("deposit_transactions")
    op.drop_index("ix_deposits_user_status", table_name="deposits")
    op.drop_table("deposits")
    op.drop_index("ix_incomes_user_date", table_name="incomes")
    op.drop_table("incomes")
    op.drop_index("ix_recurring_income_user_active", table_name="recurring_incomes")
    op.drop_table("recurring_incomes")
    op.drop_table("categories")
