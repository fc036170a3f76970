"""
wagerline.services.rakeback_service — Daily Rakeback Job
=========================================================

Sums each account's wagering volume over the trailing window, picks the
highest active tier the volume reaches, and records a rakeback of
``volume × percentage / 100``.  Rakeback is recorded only; crediting it is
a separate operator decision.

Runs once a day.  A tier already recorded for the account inside the
window is not recorded again, so a re-run the same day is harmless.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import Engine, select

from wagerline.constants import to_money
from wagerline.database.engine import get_session
from wagerline.database.models import RakebackHistory, RakebackSetting, utcnow
from wagerline.engine.report import JobReport
from wagerline.services.wagering import bet_volume_by_account

logger = logging.getLogger(__name__)


def _tiers(engine: Engine) -> list[tuple[int, Decimal, Decimal]]:
    """Active tiers as ``(id, min_volume, percentage)``, highest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(RakebackSetting)
            .where(RakebackSetting.active.is_(True))
            .order_by(RakebackSetting.min_volume.desc())
        ).all()
        return [(r.id, to_money(r.min_volume), Decimal(r.percentage)) for r in rows]


def pick_tier(
    tiers: list[tuple[int, Decimal, Decimal]], volume: Decimal
) -> tuple[int, Decimal, Decimal] | None:
    for tier in tiers:
        if tier[1] <= volume:
            return tier
    return None


def _record(
    engine: Engine,
    account_id: int,
    tier: tuple[int, Decimal, Decimal],
    volume: Decimal,
    since: datetime,
    now: datetime,
) -> bool:
    tier_id, _, percentage = tier
    with get_session(engine) as session:
        existing = session.scalar(
            select(RakebackHistory.id)
            .where(
                RakebackHistory.account_id == account_id,
                RakebackHistory.rakeback_setting_id == tier_id,
                RakebackHistory.created_at >= since,
            )
            .limit(1)
        )
        if existing is not None:
            return False
        session.add(RakebackHistory(
            account_id=account_id,
            rakeback_setting_id=tier_id,
            volume=volume,
            amount=to_money(volume * percentage / 100),
            created_at=now,
        ))
        return True


def run_daily_rakeback_job(
    engine: Engine,
    *,
    now: datetime | None = None,
    window_hours: int = 24,
) -> JobReport:
    """Record rakeback for every account that wagered inside the window."""
    now = now or utcnow()
    since = now - timedelta(hours=window_hours)
    report = JobReport(job="rakeback_daily")

    tiers = _tiers(engine)
    if not tiers:
        logger.info("Rakeback job: no active tiers configured")
        return report

    with get_session(engine) as session:
        volumes = bet_volume_by_account(session, since=since, until=now)

    for account_id, volume in sorted(volumes.items()):
        report.processed += 1
        tier = pick_tier(tiers, volume)
        if tier is None:
            report.skipped += 1
            continue
        try:
            if _record(engine, account_id, tier, volume, since, now):
                report.created += 1
            else:
                report.skipped += 1
        except Exception as exc:
            logger.exception("Rakeback failed for account %s", account_id)
            report.record_failure(account_id, exc)

    logger.info(
        "Rakeback job: processed=%d created=%d skipped=%d failed=%d",
        report.processed, report.created, report.skipped, report.failed,
    )
    return report
