"""
wagerline.services.deposit_service — Deposit Confirmation Path
===============================================================

Handles the ``deposit confirmed`` event raised by the payment gateway once
a deposit is paid.  In one transaction, with the depositor row locked:

1. Mark the deposit PAID (an already-PAID deposit is a no-op).
2. Credit the main balance.
3. Create the deposit's rollover requirement when the account override or
   the platform default asks for one.
4. Run the affiliate CPA cascade.
5. Apply the active deposit promotion, if the amount reaches one of its
   tiers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from wagerline.constants import to_money
from wagerline.database.engine import get_session
from wagerline.database.models import (
    Account,
    Deposit,
    DepositPromoEvent,
    DepositPromoParticipation,
    DepositPromoTier,
    DepositStatus,
    RolloverSource,
    utcnow,
)
from wagerline.engine.errors import LedgerConflict, ValidationFailed
from wagerline.engine.snapshot import PlatformSettings
from wagerline.services import account_store, affiliate_service, rollover_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DepositConfirmed:
    """Inbound gateway event."""

    account_id: int
    amount: Decimal
    reference: str


@dataclass
class DepositOutcome:
    deposit_id: int
    account_id: int
    amount: Decimal
    already_paid: bool = False
    balance: Decimal | None = None
    rollover_requirement_ids: list[int] = field(default_factory=list)
    commissions: list[dict] = field(default_factory=list)
    promo_bonus: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {
            "processed": True,
            "deposit_id": self.deposit_id,
            "account_id": self.account_id,
            "amount": str(self.amount),
            "already_paid": self.already_paid,
            "balance": str(self.balance) if self.balance is not None else None,
            "rollover_requirement_ids": self.rollover_requirement_ids,
            "commissions": self.commissions,
            "promo_bonus": str(self.promo_bonus),
        }


def _check_amount(amount: Decimal) -> Decimal:
    try:
        amount = to_money(amount)
    except ValueError:
        raise ValidationFailed("amount must be a number", code="invalid_amount") from None
    if amount <= 0:
        raise ValidationFailed("amount must be greater than zero", code="invalid_amount")
    return amount


def register_deposit(
    engine: Engine,
    settings: PlatformSettings,
    account_id: int,
    amount: Decimal,
    reference: str,
) -> int:
    """Record a PENDING deposit before the gateway confirms it.

    Raises
    ------
    ValidationFailed
        ``deposit_below_minimum`` / ``deposit_above_maximum``.
    """
    amount = _check_amount(amount)
    if amount < settings.min_deposit:
        raise ValidationFailed(
            f"minimum deposit is {settings.min_deposit}", code="deposit_below_minimum"
        )
    if amount > settings.max_deposit:
        raise ValidationFailed(
            f"maximum deposit is {settings.max_deposit}", code="deposit_above_maximum"
        )
    with get_session(engine) as session:
        account_store.resolve_active(session, account_id)
        deposit = Deposit(
            account_id=account_id,
            amount=amount,
            reference=reference,
            status=DepositStatus.PENDING.value,
            created_at=utcnow(),
        )
        session.add(deposit)
        session.flush()
        deposit_id = deposit.id
    logger.info("Registered deposit %s (%s) for account %s", deposit_id, amount, account_id)
    return deposit_id


# ---------------------------------------------------------------------------
# Confirmation steps
# ---------------------------------------------------------------------------
def _rollover_multiplier(account: Account, settings: PlatformSettings) -> Decimal | None:
    """Multiplier for the deposit requirement, or ``None`` for no requirement.

    The account's own multiplier applies only while its override is on;
    otherwise the platform default does.
    """
    if not (account.rollover_active or settings.default_rollover_active):
        return None
    if (
        account.rollover_active
        and account.rollover_multiplier is not None
        and account.rollover_multiplier > 0
    ):
        return Decimal(account.rollover_multiplier)
    return settings.default_rollover_multiplier


def active_promo_tiers(session: Session, now: datetime) -> list[DepositPromoTier]:
    """Active tiers of the running promotion, highest deposit threshold first."""
    event = session.scalar(
        select(DepositPromoEvent)
        .where(
            DepositPromoEvent.active.is_(True),
            DepositPromoEvent.starts_at <= now,
            DepositPromoEvent.ends_at >= now,
        )
        .order_by(DepositPromoEvent.starts_at.desc())
        .limit(1)
    )
    if event is None:
        return []
    return list(session.scalars(
        select(DepositPromoTier)
        .where(DepositPromoTier.event_id == event.id, DepositPromoTier.active.is_(True))
        .order_by(DepositPromoTier.deposit_amount.desc())
    ).all())


def _apply_promo(
    session: Session, deposit: Deposit, amount: Decimal, now: datetime
) -> tuple[Decimal, int | None]:
    tier = next(
        (t for t in active_promo_tiers(session, now) if amount >= to_money(t.deposit_amount)),
        None,
    )
    if tier is None:
        return Decimal("0"), None

    bonus = to_money(tier.bonus_amount)
    if bonus <= 0:
        return Decimal("0"), None

    participation = DepositPromoParticipation(
        account_id=deposit.account_id,
        event_id=tier.event_id,
        tier_id=tier.id,
        deposit_id=deposit.id,
        bonus_amount=bonus,
        created_at=now,
    )
    session.add(participation)
    session.flush()
    account_store.increment(session, deposit.account_id, bonus)

    requirement_id = None
    rollover = to_money(tier.rollover_amount or 0)
    if rollover > 0:
        requirement = rollover_service.create_requirement(
            session,
            deposit.account_id,
            RolloverSource.DEPOSIT_BONUS,
            participation.id,
            rollover,
            (rollover / bonus).quantize(Decimal("0.01")),
        )
        requirement_id = requirement.id
    logger.info(
        "Deposit %s hit promo tier %s: bonus %s, rollover %s",
        deposit.id, tier.id, bonus, rollover,
    )
    return bonus, requirement_id


def confirm_deposit(
    engine: Engine,
    settings: PlatformSettings,
    confirmed: DepositConfirmed,
) -> DepositOutcome:
    """Apply a paid deposit exactly once.

    A deposit that is already PAID returns ``already_paid=True`` and changes
    nothing.  A reference never registered before is created on the spot.

    Raises
    ------
    ValidationFailed
    AccountNotFound
    LedgerConflict
        ``deposit_mismatch`` when the reference belongs to another account
        or a different amount.
    """
    amount = _check_amount(confirmed.amount)
    now = utcnow()

    with get_session(engine) as session:
        account = account_store.load(session, confirmed.account_id, lock=True)
        deposit = session.scalar(
            select(Deposit).where(Deposit.reference == confirmed.reference).with_for_update()
        )
        if deposit is not None and (
            deposit.account_id != confirmed.account_id or to_money(deposit.amount) != amount
        ):
            raise LedgerConflict(
                f"deposit {confirmed.reference!r} does not match the confirmation",
                code="deposit_mismatch",
            )
        if deposit is not None and deposit.status == DepositStatus.PAID.value:
            logger.info("Deposit %s already paid — ignoring confirmation", confirmed.reference)
            return DepositOutcome(
                deposit_id=deposit.id,
                account_id=deposit.account_id,
                amount=amount,
                already_paid=True,
            )
        if deposit is None:
            deposit = Deposit(
                account_id=confirmed.account_id,
                amount=amount,
                reference=confirmed.reference,
                created_at=now,
            )
            session.add(deposit)

        deposit.status = DepositStatus.PAID.value
        deposit.paid_at = now
        session.flush()

        outcome = DepositOutcome(
            deposit_id=deposit.id,
            account_id=confirmed.account_id,
            amount=amount,
        )
        account_store.increment(session, confirmed.account_id, amount)

        multiplier = _rollover_multiplier(account, settings)
        if multiplier is not None:
            requirement = rollover_service.create_requirement(
                session,
                confirmed.account_id,
                RolloverSource.DEPOSIT,
                deposit.id,
                amount * multiplier,
                multiplier,
            )
            outcome.rollover_requirement_ids.append(requirement.id)

        commissions = affiliate_service.run_cascade(
            session, confirmed.account_id, amount, deposit_id=deposit.id
        )
        outcome.commissions = [
            {"affiliate_user_id": c.affiliate_user_id, "level": c.level, "amount": str(c.amount)}
            for c in commissions
        ]

        bonus, bonus_requirement_id = _apply_promo(session, deposit, amount, now)
        outcome.promo_bonus = bonus
        if bonus_requirement_id is not None:
            outcome.rollover_requirement_ids.append(bonus_requirement_id)

        outcome.balance = account_store.read(session, confirmed.account_id).balance

    logger.info(
        "Deposit %s confirmed for account %s: %s (CPA levels paid: %d)",
        confirmed.reference, confirmed.account_id, amount, len(outcome.commissions),
    )
    return outcome
