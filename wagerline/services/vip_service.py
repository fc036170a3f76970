"""
wagerline.services.vip_service — VIP Progression
=================================================

* :func:`reevaluate` runs after every accepted bet, in the bet's
  transaction, and grants one ``upgrade`` history per tier crossed.
* :func:`run_periodic_bonus_job` is the weekly / monthly batch job.  Each
  account gets its own transaction, so one failure never blocks the rest.
* :func:`redeem_vip_bonus` moves granted bonus from ``vip_balance`` to the
  main balance.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from wagerline.constants import to_money
from wagerline.database.engine import get_session
from wagerline.database.models import (
    Account,
    VipBonusRedemption,
    VipHistory,
    VipHistoryKind,
    VipLevel,
    utcnow,
)
from wagerline.engine.errors import BusinessRuleViolation, ValidationFailed
from wagerline.engine.report import JobReport
from wagerline.engine.snapshot import PlatformSettings, load_platform_settings
from wagerline.engine.vip import (
    LadderRung,
    VipUpgradePlan,
    next_rung,
    plan_upgrade,
    rung_for_tier,
)
from wagerline.services import account_store
from wagerline.services.wagering import bet_volume

logger = logging.getLogger(__name__)

PERIODIC_KINDS = (VipHistoryKind.WEEKLY, VipHistoryKind.MONTHLY)


# ---------------------------------------------------------------------------
# Ladder
# ---------------------------------------------------------------------------
def load_ladder(session: Session) -> list[LadderRung]:
    levels = session.scalars(select(VipLevel).order_by(VipLevel.tier)).all()
    return [
        LadderRung(
            level_id=lvl.id,
            tier=lvl.tier,
            goal=to_money(lvl.goal),
            upgrade_bonus=to_money(lvl.upgrade_bonus),
            weekly_bonus=to_money(lvl.weekly_bonus),
            monthly_bonus=to_money(lvl.monthly_bonus),
        )
        for lvl in levels
    ]


# ---------------------------------------------------------------------------
# Re-evaluation
# ---------------------------------------------------------------------------
def reevaluate(session: Session, account_id: int) -> VipUpgradePlan:
    """Bring the account's tier in line with its lifetime wagering volume.

    Writes one ``upgrade`` history per traversed tier, credits the summed
    bonus to ``vip_balance`` in one increment, and raises ``vip`` to the
    target.  Never lowers a tier.
    """
    account = account_store.load(session, account_id, lock=True)
    volume = bet_volume(session, account_id)
    plan = plan_upgrade(load_ladder(session), account.vip or 0, volume)
    if not plan.upgraded:
        return plan

    now = utcnow()
    for rung in plan.steps:
        session.add(VipHistory(
            account_id=account_id,
            vip_level_id=rung.level_id,
            kind=VipHistoryKind.UPGRADE.value,
            goal=rung.goal,
            bonus_amount=rung.upgrade_bonus,
            created_at=now,
        ))
    account.vip = plan.target_tier
    if plan.total_bonus > 0:
        account_store.increment(session, account_id, plan.total_bonus, column="vip_balance")
    session.flush()
    logger.info(
        "Account %s upgraded VIP %d → %d (volume %s, bonus %s)",
        account_id, plan.current_tier, plan.target_tier, volume, plan.total_bonus,
    )
    return plan


# ---------------------------------------------------------------------------
# Periodic bonus job
# ---------------------------------------------------------------------------
def _window_days(settings: PlatformSettings, kind: VipHistoryKind) -> int:
    if kind is VipHistoryKind.WEEKLY:
        return settings.vip_weekly_window_days
    return settings.vip_monthly_window_days


def _bonus_for(rung: LadderRung, kind: VipHistoryKind) -> Decimal:
    return rung.weekly_bonus if kind is VipHistoryKind.WEEKLY else rung.monthly_bonus


def _grant_periodic_bonus(
    engine: Engine,
    account_id: int,
    kind: VipHistoryKind,
    now: datetime,
    window_start: datetime,
) -> bool:
    """One account, one transaction.  Returns True when a bonus was granted."""
    with get_session(engine) as session:
        account = session.scalar(
            select(Account).where(Account.id == account_id).with_for_update()
        )
        if account is None or not account.is_active or (account.vip or 0) <= 0:
            return False

        rung = rung_for_tier(load_ladder(session), account.vip)
        if rung is None:
            logger.warning("Account %s has VIP %s with no matching level", account_id, account.vip)
            return False
        bonus = _bonus_for(rung, kind)
        if bonus <= 0:
            return False

        already = session.scalar(
            select(VipHistory.id)
            .where(
                VipHistory.account_id == account_id,
                VipHistory.vip_level_id == rung.level_id,
                VipHistory.kind == kind.value,
                VipHistory.created_at >= window_start,
            )
            .limit(1)
        )
        if already is not None:
            return False

        session.add(VipHistory(
            account_id=account_id,
            vip_level_id=rung.level_id,
            kind=kind.value,
            goal=rung.goal,
            bonus_amount=bonus,
            created_at=now,
        ))
        account_store.increment(session, account_id, bonus, column="vip_balance")
        return True


def run_periodic_bonus_job(
    engine: Engine,
    kind: VipHistoryKind | str,
    *,
    now: datetime | None = None,
    settings: PlatformSettings | None = None,
) -> JobReport:
    """Grant the weekly or monthly VIP bonus to every eligible account.

    Eligible: ``vip > 0``, active, not banned, tier bonus above zero, and no
    history of the same kind for the same tier inside the rolling window.
    """
    kind = VipHistoryKind(kind)
    if kind not in PERIODIC_KINDS:
        raise ValidationFailed(f"{kind} is not a periodic bonus", code="invalid_bonus_kind")
    now = now or utcnow()

    with get_session(engine) as session:
        settings = settings or load_platform_settings(session)
        account_ids = session.scalars(
            select(Account.id)
            .where(Account.vip > 0, Account.status.is_(True), Account.banned.is_(False))
            .order_by(Account.id)
        ).all()

    window_start = now - timedelta(days=_window_days(settings, kind))
    report = JobReport(job=f"vip_{kind.value}")
    for account_id in account_ids:
        report.processed += 1
        try:
            if _grant_periodic_bonus(engine, account_id, kind, now, window_start):
                report.created += 1
            else:
                report.skipped += 1
        except Exception as exc:
            logger.exception("VIP %s bonus failed for account %s", kind.value, account_id)
            report.record_failure(account_id, exc)

    logger.info(
        "VIP %s job: processed=%d created=%d skipped=%d failed=%d",
        kind.value, report.processed, report.created, report.skipped, report.failed,
    )
    return report


# ---------------------------------------------------------------------------
# Summaries & redemption
# ---------------------------------------------------------------------------
def vip_progress(session: Session, account_id: int) -> dict:
    """Current tier, lifetime volume, and distance to the next goal."""
    account = account_store.resolve_active(session, account_id)
    ladder = load_ladder(session)
    volume = bet_volume(session, account_id)
    upcoming = next_rung(ladder, account.vip or 0)
    return {
        "account_id": account_id,
        "vip": account.vip or 0,
        "volume": str(volume),
        "next_tier": upcoming.tier if upcoming else None,
        "next_goal": str(upcoming.goal) if upcoming else None,
        "remaining": str(max(upcoming.goal - volume, Decimal("0"))) if upcoming else "0",
    }


def vip_bonus_summary(session: Session, account_id: int) -> dict[str, dict[str, str]]:
    """Granted, redeemed and available VIP bonus per kind."""
    account_store.read(session, account_id)
    granted = dict(session.execute(
        select(VipHistory.kind, func.sum(VipHistory.bonus_amount))
        .where(VipHistory.account_id == account_id)
        .group_by(VipHistory.kind)
    ).all())
    redeemed = dict(session.execute(
        select(VipBonusRedemption.bonus_type, func.sum(VipBonusRedemption.amount))
        .where(VipBonusRedemption.account_id == account_id)
        .group_by(VipBonusRedemption.bonus_type)
    ).all())

    summary: dict[str, dict[str, str]] = {}
    for kind in VipHistoryKind:
        g = to_money(granted.get(kind.value) or 0)
        r = to_money(redeemed.get(kind.value) or 0)
        summary[kind.value] = {
            "granted": str(g),
            "redeemed": str(r),
            "available": str(max(g - r, Decimal("0"))),
        }
    return summary


def redeem_vip_bonus(
    engine: Engine,
    account_id: int,
    bonus_type: VipHistoryKind | str,
    amount: Decimal,
) -> account_store.AccountBalances:
    """Move *amount* of a granted bonus kind from ``vip_balance`` to ``balance``.

    Raises
    ------
    ValidationFailed
        Unknown bonus type or non-positive amount.
    BusinessRuleViolation
        ``vip_bonus_not_available`` when *amount* exceeds what is left of
        that kind.
    InsufficientFunds
        ``vip_balance`` cannot cover *amount*.
    """
    try:
        kind = VipHistoryKind(bonus_type)
    except ValueError:
        raise ValidationFailed(
            f"unknown bonus type {bonus_type!r}", code="invalid_bonus_type"
        ) from None
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationFailed("amount must be greater than zero", code="invalid_amount")

    with get_session(engine) as session:
        account_store.resolve_active(session, account_id, lock=True)
        available = Decimal(vip_bonus_summary(session, account_id)[kind.value]["available"])
        if amount > available:
            raise BusinessRuleViolation(
                f"only {available} of {kind.value} bonus is available",
                code="vip_bonus_not_available",
                details={"available": str(available)},
            )
        account_store.decrement(session, account_id, amount, column="vip_balance")
        account_store.increment(session, account_id, amount, column="balance")
        session.add(VipBonusRedemption(
            account_id=account_id,
            bonus_type=kind.value,
            amount=amount,
            created_at=utcnow(),
        ))
        session.flush()
        balances = account_store.read(session, account_id)

    logger.info("Account %s redeemed %s %s VIP bonus", account_id, amount, kind.value)
    return balances
