"""initial schema: users, transactions, report settings and history

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None


TRANSACTION_TYPE = sa.Enum("income", "expense", name="transactiontype")
PAYMENT_METHOD = sa.Enum(
    "cash",
    "card",
    "bank_transfer",
    "mobile_payment",
    "auto_debit",
    "other",
    name="paymentmethod",
)
RECURRING_INTERVAL = sa.Enum(
    "daily", "weekly", "monthly", "yearly", name="recurringinterval"
)
REPORT_FREQUENCY = sa.Enum("monthly", name="reportfrequency")
REPORT_STATUS = sa.Enum("sent", "failed", "no_activity", name="reportstatus")


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=120)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("payment_method", PAYMENT_METHOD, nullable=False),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("recurring_interval", RECURRING_INTERVAL),
        sa.Column("next_recurring_date", sa.Date()),
        sa.Column("last_processed", sa.Date()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "amount_cents >= 0", name="ck_transactions_amount_positive"
        ),
        sa.CheckConstraint(
            "NOT is_recurring OR recurring_interval IS NOT NULL",
            name="ck_transactions_recurring_interval",
        ),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_recurring_due",
        "transactions",
        ["is_recurring", "next_recurring_date"],
    )

    op.create_table(
        "report_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "is_enabled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("frequency", REPORT_FREQUENCY, nullable=False),
        sa.Column("last_sent_date", sa.DateTime()),
        sa.Column("next_report_date", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id"),
    )
    op.create_index(
        "ix_report_settings_due",
        "report_settings",
        ["is_enabled", "next_report_date"],
    )

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sent_date", sa.DateTime(), nullable=False),
        sa.Column("period", sa.String(length=80), nullable=False),
        sa.Column("status", REPORT_STATUS, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_reports_user_sent", "reports", ["user_id", "sent_date"])


def downgrade():
    op.drop_index("ix_reports_user_sent", table_name="reports")
    op.drop_table("reports")
    op.drop_index("ix_report_settings_due", table_name="report_settings")
    op.drop_table("report_settings")
    op.drop_index("ix_transactions_recurring_due", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("users")
    for enum in (
        REPORT_STATUS,
        REPORT_FREQUENCY,
        RECURRING_INTERVAL,
        PAYMENT_METHOD,
        TRANSACTION_TYPE,
    ):
        enum.drop(op.get_bind(), checkfirst=True)
