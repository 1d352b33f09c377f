"""referral credits, credit transactions, fraud checks

Revision ID: 0001_referral_credits
Revises:
Create Date: 2026-10-17 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_referral_credits"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


credit_status = sa.Enum("ACTIVE", "USED", "EXPIRED", "CANCELLED", name="creditstatus")
credit_transaction_type = sa.Enum("USED", "REFUNDED", "EXPIRED", name="credittransactiontype")
fraud_check_type = sa.Enum("COMPREHENSIVE", "MANUAL_REVIEW", name="fraudchecktype")
risk_level = sa.Enum("LOW", "MEDIUM", "HIGH", "CRITICAL", name="risklevel")
fraud_resolution = sa.Enum("APPROVED", "REJECTED", name="fraudresolution")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])

    op.create_table(
        "referral_links",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("total_clicks", sa.Integer(), nullable=False),
        sa.Column("total_conversions", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("code", name="uq_referral_links_code"),
    )
    op.create_index("ix_referral_links_user_id", "referral_links", ["user_id"])

    op.create_table(
        "referral_clicks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "referral_link_id", sa.Integer(),
            sa.ForeignKey("referral_links.id"), nullable=False
        ),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("device_type", sa.String(32), nullable=True),
        sa.Column("converted_to_signup", sa.Boolean(), nullable=False),
        sa.Column("clicked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_referral_clicks_ip_address", "referral_clicks", ["ip_address"])

    op.create_table(
        "referral_conversions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "referral_link_id", sa.Integer(),
            sa.ForeignKey("referral_links.id"), nullable=True
        ),
        sa.Column("referrer_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("referee_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(24), nullable=False),
        sa.Column("referrer_credit_amount", sa.DECIMAL(12, 2)),
        sa.Column("referee_credit_amount", sa.DECIMAL(12, 2)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "referral_credits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("credit_type", sa.String(48), nullable=False),
        sa.Column("credit_amount", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("used_amount", sa.DECIMAL(12, 2), nullable=False),
        sa.Column(
            "remaining_amount", sa.DECIMAL(12, 2),
            sa.Computed("credit_amount - used_amount", persisted=True)
        ),
        sa.Column("status", credit_status, nullable=False),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_expired", sa.Boolean(), nullable=False),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("used_amount <= credit_amount", name="ck_referral_credits_not_overspent"),
        sa.CheckConstraint("used_amount >= 0", name="ck_referral_credits_used_non_negative"),
    )
    op.create_index("ix_referral_credits_user_id", "referral_credits", ["user_id"])
    op.create_index("ix_referral_credits_expiry_date", "referral_credits", ["expiry_date"])

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "credit_id", sa.Integer(),
            sa.ForeignKey("referral_credits.id"), nullable=False
        ),
        sa.Column("transaction_type", credit_transaction_type, nullable=False),
        sa.Column("amount", sa.DECIMAL(12, 2), nullable=False),
        sa.Column("applied_to_type", sa.String(48), nullable=True),
        sa.Column("applied_to_id", sa.String(), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_credit_transactions_user_id", "credit_transactions", ["user_id"])
    op.create_index("ix_credit_transactions_credit_id", "credit_transactions", ["credit_id"])
    op.create_index(
        "ix_credit_transactions_applied_to_id", "credit_transactions", ["applied_to_id"]
    )

    op.create_table(
        "referral_fraud_checks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("check_type", fraud_check_type, nullable=False),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "referral_link_id", sa.Integer(),
            sa.ForeignKey("referral_links.id"), nullable=True
        ),
        sa.Column(
            "conversion_id", sa.Integer(),
            sa.ForeignKey("referral_conversions.id"), nullable=True
        ),
        sa.Column("risk_score", sa.Integer(), nullable=False),
        sa.Column("risk_level", risk_level, nullable=False),
        sa.Column("is_flagged", sa.Boolean(), nullable=False),
        sa.Column("is_blocked", sa.Boolean(), nullable=False),
        sa.Column("requires_manual_review", sa.Boolean(), nullable=False),
        sa.Column("check_details", sa.JSON()),
        sa.Column("resolution", fraud_resolution, nullable=True),
        sa.Column("reviewed_by", sa.String(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_referral_fraud_checks_user_id", "referral_fraud_checks", ["user_id"])


def downgrade() -> None:
    op.drop_table("referral_fraud_checks")
    op.drop_table("credit_transactions")
    op.drop_table("referral_credits")
    op.drop_table("referral_conversions")
    op.drop_table("referral_clicks")
    op.drop_table("referral_links")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (
        fraud_resolution, risk_level, fraud_check_type,
        credit_transaction_type, credit_status
    ):
        enum_type.drop(bind, checkfirst=True)
