"""Initial ledger schema

Revision ID: 5c2e8a71f0b3
Revises:
Create Date: 2026-10-19 09:12:40.118203

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e8a71f0b3'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

MONEY = sa.Numeric(18, 2)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()
    )


def upgrade() -> None:
    """Create accounts, the settlement journal and the bonus/promo tables."""

    # --- accounts ---
    op.create_table(
        "accounts",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("affiliate_code", sa.String(32), nullable=False, unique=True),
        sa.Column("balance", MONEY, nullable=False, server_default="0"),
        sa.Column("affiliate_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("vip_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("status", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("banned", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("vip", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "invited_by_id", sa.BigInteger,
            sa.ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("cpa_available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("min_deposit_for_cpa", MONEY, nullable=False, server_default="0"),
        sa.Column("cpa_level_1", MONEY, nullable=False, server_default="0"),
        sa.Column("cpa_level_2", MONEY, nullable=False, server_default="0"),
        sa.Column("cpa_level_3", MONEY, nullable=False, server_default="0"),
        sa.Column("rollover_active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("rollover_multiplier", sa.Numeric(10, 2), nullable=True),
        sa.Column("jump_available", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("jump_limit", sa.Integer, nullable=False, server_default="0"),
        sa.Column("jump_invite_count", sa.Integer, nullable=False, server_default="0"),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()
        ),
    )
    op.create_index("ix_accounts_invited_by", "accounts", ["invited_by_id"])
    op.create_index("ix_accounts_vip", "accounts", ["vip"])

    # --- deposits ---
    op.create_table(
        "deposits",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("reference", sa.String(128), nullable=False, unique=True),
        _created_at(),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_deposits_account_status", "deposits", ["account_id", "status"])

    # --- ledger ---
    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("provider_transaction_id", sa.String(128), nullable=True),
        sa.Column("account_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False, server_default="0"),
        sa.Column("balance_after", MONEY, nullable=False),
        sa.Column("currency", sa.String(8), nullable=False, server_default="BRL"),
        sa.Column("session_id", sa.String(128), nullable=True),
        sa.Column("game_reference", sa.String(128), nullable=True),
        sa.Column("round_id", sa.String(128), nullable=True),
        sa.Column("reference_transaction_id", sa.String(128), nullable=True),
        sa.Column("internal_transaction_id", sa.String(64), nullable=True),
        sa.Column("raw_payload", postgresql.JSONB, nullable=True),
        _created_at(),
        sa.UniqueConstraint(
            "provider", "action", "provider_transaction_id",
            name="uq_ledger_provider_action_txid",
        ),
    )
    op.create_index(
        "ix_ledger_account_created", "ledger_entries", ["account_id", "created_at"]
    )
    op.create_index("ix_ledger_internal_txid", "ledger_entries", ["internal_transaction_id"])

    op.create_table(
        "ledger_reversals",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "rollback_entry_id", sa.BigInteger,
            sa.ForeignKey("ledger_entries.id"), nullable=False,
        ),
        sa.Column(
            "reversed_entry_id", sa.BigInteger,
            sa.ForeignKey("ledger_entries.id"), nullable=False, unique=True,
        ),
        _created_at(),
    )

    # --- rollover ---
    op.create_table(
        "rollover_requirements",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("source_type", sa.String(30), nullable=False),
        sa.Column("source_id", sa.BigInteger, nullable=True),
        sa.Column("amount_required", MONEY, nullable=False),
        sa.Column("amount_completed", MONEY, nullable=False, server_default="0"),
        sa.Column("multiplier", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        _created_at(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_rollover_account_status", "rollover_requirements", ["account_id", "status"]
    )

    # --- affiliates ---
    op.create_table(
        "affiliate_commissions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column(
            "affiliate_user_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("level", sa.Integer, nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="cpa"),
        sa.Column("deposit_id", sa.BigInteger, sa.ForeignKey("deposits.id"), nullable=True),
        _created_at(),
        sa.UniqueConstraint("user_id", "type", "level", name="uq_affiliate_user_type_level"),
    )
    op.create_index(
        "ix_affiliate_affiliate_user", "affiliate_commissions", ["affiliate_user_id"]
    )

    # --- vip ---
    op.create_table(
        "vip_levels",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tier", sa.Integer, nullable=False, unique=True),
        sa.Column("name", sa.String(50), nullable=True),
        sa.Column("goal", MONEY, nullable=False),
        sa.Column("upgrade_bonus", MONEY, nullable=False, server_default="0"),
        sa.Column("weekly_bonus", MONEY, nullable=False, server_default="0"),
        sa.Column("monthly_bonus", MONEY, nullable=False, server_default="0"),
    )
    op.create_table(
        "vip_histories",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("vip_level_id", sa.Integer, sa.ForeignKey("vip_levels.id"), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("goal", MONEY, nullable=False, server_default="0"),
        sa.Column("bonus_amount", MONEY, nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_vip_history_account_kind", "vip_histories", ["account_id", "kind", "created_at"]
    )
    op.create_table(
        "vip_bonus_redemptions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("bonus_type", sa.String(20), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_vip_redemption_account_type", "vip_bonus_redemptions", ["account_id", "bonus_type"]
    )

    # --- deposit promotions ---
    op.create_table(
        "deposit_promo_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "deposit_promo_tiers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "event_id", sa.Integer,
            sa.ForeignKey("deposit_promo_events.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("deposit_amount", MONEY, nullable=False),
        sa.Column("bonus_amount", MONEY, nullable=False),
        sa.Column("rollover_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "deposit_promo_participations",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column(
            "event_id", sa.Integer, sa.ForeignKey("deposit_promo_events.id"), nullable=False
        ),
        sa.Column(
            "tier_id", sa.Integer, sa.ForeignKey("deposit_promo_tiers.id"), nullable=False
        ),
        sa.Column(
            "deposit_id", sa.BigInteger,
            sa.ForeignKey("deposits.id"), nullable=False, unique=True,
        ),
        sa.Column("bonus_amount", MONEY, nullable=False),
        _created_at(),
    )

    # --- withdrawals ---
    op.create_table(
        "withdrawals",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()
        ),
    )
    op.create_index(
        "ix_withdrawals_account_status", "withdrawals", ["account_id", "status"]
    )

    # --- redeem codes ---
    op.create_table(
        "redeem_codes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("max_uses", sa.Integer, nullable=False, server_default="1"),
        sa.Column("used_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rollover_multiplier", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_table(
        "redeem_code_histories",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "redeem_code_id", sa.Integer, sa.ForeignKey("redeem_codes.id"), nullable=False
        ),
        sa.Column("account_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        _created_at(),
        sa.UniqueConstraint("redeem_code_id", "account_id", name="uq_redeem_code_account"),
    )

    # --- rakeback ---
    op.create_table(
        "rakeback_settings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("min_volume", MONEY, nullable=False),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "rakeback_histories",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.BigInteger, sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column(
            "rakeback_setting_id", sa.Integer,
            sa.ForeignKey("rakeback_settings.id"), nullable=False,
        ),
        sa.Column("volume", MONEY, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_rakeback_history_account_created", "rakeback_histories", ["account_id", "created_at"]
    )

    # --- settings ---
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()
        ),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    for table in (
        "settings",
        "rakeback_histories",
        "rakeback_settings",
        "redeem_code_histories",
        "redeem_codes",
        "withdrawals",
        "deposit_promo_participations",
        "deposit_promo_tiers",
        "deposit_promo_events",
        "vip_bonus_redemptions",
        "vip_histories",
        "vip_levels",
        "affiliate_commissions",
        "rollover_requirements",
        "ledger_reversals",
        "ledger_entries",
        "deposits",
        "accounts",
    ):
        op.drop_table(table)
