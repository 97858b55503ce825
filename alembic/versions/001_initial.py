"""Initial schema: accounts, usage_events, payment_events.

Startup runs Base.metadata.create_all before migrating, so each table is
only created here when it is missing.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    existing = set(sa.inspect(op.get_bind()).get_table_names())

    if "accounts" not in existing:
        op.create_table(
            "accounts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(), nullable=False),
            sa.Column("hashed_password", sa.String(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("premium_until", sa.DateTime(), nullable=True),
            sa.Column("premium_granted_at", sa.DateTime(), nullable=True),
            sa.Column("premium_revoked_at", sa.DateTime(), nullable=True),
            sa.Column("demo_tasks_used", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("stripe_customer_id", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=True),
        )
        op.create_index("ix_accounts_id", "accounts", ["id"])
        op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)
        op.create_index("ix_accounts_stripe_customer_id", "accounts", ["stripe_customer_id"], unique=True)

    if "usage_events" not in existing:
        op.create_table(
            "usage_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "account_id",
                sa.Integer(),
                sa.ForeignKey("accounts.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("task_type", sa.String(), nullable=False),
            sa.Column("task_mode", sa.String(), nullable=False),
            sa.Column("is_demo", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_usage_events_id", "usage_events", ["id"])
        op.create_index("ix_usage_events_account_id", "usage_events", ["account_id"])

    if "payment_events" not in existing:
        op.create_table(
            "payment_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "account_id",
                sa.Integer(),
                sa.ForeignKey("accounts.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("external_payment_id", sa.String(), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=True),
            sa.Column("currency", sa.String(), nullable=False, server_default="usd"),
            sa.Column("status", sa.String(), nullable=False, server_default="completed"),
            sa.Column("plan_type", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )
        op.create_index("ix_payment_events_id", "payment_events", ["id"])
        op.create_index("ix_payment_events_account_id", "payment_events", ["account_id"])
        op.create_index(
            "ix_payment_events_external_payment_id",
            "payment_events",
            ["external_payment_id"],
            unique=True,
        )


def downgrade() -> None:
    op.drop_table("payment_events")
    op.drop_table("usage_events")
    op.drop_table("accounts")
