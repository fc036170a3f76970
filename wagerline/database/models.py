"""
wagerline.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- accounts               — Player wallets (main / affiliate / VIP balances)
- ledger_entries         — Append-only provider settlement journal
- ledger_reversals       — Which bet/win each rollback reversed
- rollover_requirements  — Wagering obligations gating withdrawals
- affiliate_commissions  — One-time CPA credits per depositor and level
- vip_levels             — Static VIP ladder
- vip_histories          — Upgrade / weekly / monthly bonus grants
- vip_bonus_redemptions  — VIP balance moved to the main balance
- deposits               — Gateway deposits (PENDING → PAID)
- deposit_promo_*        — Time-boxed deposit bonus tiers
- withdrawals            — Withdrawal requests
- redeem_codes / redeem_code_histories — Promotional codes
- rakeback_settings / rakeback_histories — Daily rakeback tiers
- settings               — Key/JSON business tuning
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

Money = Numeric(18, 2)


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Wagerline ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SettlementAction(enum.StrEnum):
    """Provider callback actions accepted by the settlement processor."""
    BALANCE = "balance"
    BET = "bet"
    WIN = "win"
    REFUND = "refund"
    ROLLBACK = "rollback"


class RolloverSource(enum.StrEnum):
    DEPOSIT = "deposit"
    DEPOSIT_BONUS = "deposit_bonus"
    REDEEM_CODE = "redeem_code"


class RolloverStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class CommissionType(enum.StrEnum):
    CPA = "cpa"


class VipHistoryKind(enum.StrEnum):
    UPGRADE = "upgrade"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class DepositStatus(enum.StrEnum):
    PENDING = "PENDING"
    PAID = "PAID"


class WithdrawalStatus(enum.StrEnum):
    PENDING = "PENDING"
    PAID = "PAID"
    REJECTED = "REJECTED"


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
class Account(Base):
    """A player wallet.

    Balances are only ever changed through
    :mod:`wagerline.services.account_store`, which issues single-statement
    ``UPDATE … SET col = col ± :amount`` mutations.  Accounts are never
    deleted; deactivation flips ``status``.
    """
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    affiliate_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    affiliate_balance: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    vip_balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vip: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    invited_by_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )

    # CPA configuration (applies when this account is the referrer)
    cpa_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    min_deposit_for_cpa: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    cpa_level_1: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    cpa_level_2: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    cpa_level_3: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    # Rollover overrides (None → platform default)
    rollover_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rollover_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Referral jump limiting
    jump_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    jump_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    jump_invite_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    inviter: Mapped[Account | None] = relationship(remote_side=[id])

    __table_args__ = (
        Index("ix_accounts_invited_by", "invited_by_id"),
        Index("ix_accounts_vip", "vip"),
    )

    @property
    def is_active(self) -> bool:
        return bool(self.status) and not self.banned

    def __repr__(self) -> str:
        return f"<Account id={self.id} code={self.affiliate_code!r} vip={self.vip}>"


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------
class LedgerEntry(Base):
    """One row per accepted provider event.

    ``(provider, action, provider_transaction_id)`` is the idempotency key.
    Balance queries carry no transaction id and are never deduplicated.
    ``balance_after`` is stored so a replayed callback gets the original
    response back verbatim.
    """
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    provider_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    balance_after: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="BRL")
    session_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    game_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    round_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reference_transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    internal_transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    raw_payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    account: Mapped[Account] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "provider", "action", "provider_transaction_id",
            name="uq_ledger_provider_action_txid",
        ),
        Index("ix_ledger_account_created", "account_id", "created_at"),
        Index("ix_ledger_internal_txid", "internal_transaction_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry id={self.id} {self.provider}/{self.action}"
            f" tx={self.provider_transaction_id!r} amount={self.amount}>"
        )


class LedgerReversal(Base):
    """Links a rollback entry to each bet/win it reversed.

    ``reversed_entry_id`` is unique: an event is reversed at most once,
    regardless of how many rollback callbacks reference it.
    """
    __tablename__ = "ledger_reversals"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    rollback_entry_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ledger_entries.id"), nullable=False
    )
    reversed_entry_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("ledger_entries.id"), nullable=False, unique=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<LedgerReversal rollback={self.rollback_entry_id} reversed={self.reversed_entry_id}>"


# ---------------------------------------------------------------------------
# Rollover
# ---------------------------------------------------------------------------
class RolloverRequirement(Base):
    __tablename__ = "rollover_requirements"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    amount_required: Mapped[Decimal] = mapped_column(Money, nullable=False)
    amount_completed: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0")
    )
    multiplier: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RolloverStatus.ACTIVE.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_rollover_account_status", "account_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<RolloverRequirement id={self.id} account={self.account_id}"
            f" {self.amount_completed}/{self.amount_required} {self.status}>"
        )


# ---------------------------------------------------------------------------
# Affiliates
# ---------------------------------------------------------------------------
class AffiliateCommission(Base):
    __tablename__ = "affiliate_commissions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("accounts.id"), nullable=False)
    affiliate_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=CommissionType.CPA.value)
    deposit_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("deposits.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "type", "level", name="uq_affiliate_user_type_level"),
        Index("ix_affiliate_affiliate_user", "affiliate_user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AffiliateCommission user={self.user_id} -> {self.affiliate_user_id}"
            f" L{self.level} {self.amount}>"
        )


# ---------------------------------------------------------------------------
# VIP
# ---------------------------------------------------------------------------
class VipLevel(Base):
    __tablename__ = "vip_levels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tier: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    goal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    upgrade_bonus: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    weekly_bonus: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    monthly_bonus: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    def __repr__(self) -> str:
        return f"<VipLevel tier={self.tier} goal={self.goal}>"


class VipHistory(Base):
    __tablename__ = "vip_histories"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    vip_level_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vip_levels.id"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    goal: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bonus_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    vip_level: Mapped[VipLevel] = relationship()

    __table_args__ = (
        Index("ix_vip_history_account_kind", "account_id", "kind", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<VipHistory account={self.account_id} {self.kind} bonus={self.bonus_amount}>"


class VipBonusRedemption(Base):
    __tablename__ = "vip_bonus_redemptions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    bonus_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_vip_redemption_account_type", "account_id", "bonus_type"),
    )


# ---------------------------------------------------------------------------
# Deposits & promotions
# ---------------------------------------------------------------------------
class Deposit(Base):
    __tablename__ = "deposits"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DepositStatus.PENDING.value
    )
    reference: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_deposits_account_status", "account_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Deposit id={self.id} ref={self.reference!r} {self.amount} {self.status}>"


class DepositPromoEvent(Base):
    __tablename__ = "deposit_promo_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    tiers: Mapped[list[DepositPromoTier]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )


class DepositPromoTier(Base):
    __tablename__ = "deposit_promo_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deposit_promo_events.id", ondelete="CASCADE"), nullable=False
    )
    deposit_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    bonus_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    rollover_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    event: Mapped[DepositPromoEvent] = relationship(back_populates="tiers")


class DepositPromoParticipation(Base):
    __tablename__ = "deposit_promo_participations"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deposit_promo_events.id"), nullable=False
    )
    tier_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("deposit_promo_tiers.id"), nullable=False
    )
    deposit_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("deposits.id"), nullable=False, unique=True
    )
    bonus_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------
class Withdrawal(Base):
    __tablename__ = "withdrawals"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WithdrawalStatus.PENDING.value
    )
    reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_withdrawals_account_status", "account_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Withdrawal id={self.id} account={self.account_id} {self.amount} {self.status}>"


# ---------------------------------------------------------------------------
# Redeem codes
# ---------------------------------------------------------------------------
class RedeemCode(Base):
    __tablename__ = "redeem_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rollover_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<RedeemCode {self.code!r} {self.used_count}/{self.max_uses}>"


class RedeemCodeHistory(Base):
    __tablename__ = "redeem_code_histories"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    redeem_code_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("redeem_codes.id"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("redeem_code_id", "account_id", name="uq_redeem_code_account"),
    )


# ---------------------------------------------------------------------------
# Rakeback
# ---------------------------------------------------------------------------
class RakebackSetting(Base):
    __tablename__ = "rakeback_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    min_volume: Mapped[Decimal] = mapped_column(Money, nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class RakebackHistory(Base):
    __tablename__ = "rakeback_histories"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accounts.id"), nullable=False
    )
    rakeback_setting_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rakeback_settings.id"), nullable=False
    )
    volume: Mapped[Decimal] = mapped_column(Money, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_rakeback_history_account_created", "account_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value business configuration.

    Withdrawal limits, rollover defaults, CPA defaults and job windows live
    here so operators can tune them without redeploying.  Values are JSON
    strings; :func:`wagerline.engine.snapshot.load_platform_settings` turns
    the rows into an immutable snapshot.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
