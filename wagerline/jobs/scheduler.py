"""
wagerline.jobs.scheduler — Scheduled Batch Jobs
================================================

APScheduler wiring for the periodic jobs:

* weekly VIP bonus   — Mondays 00:05
* monthly VIP bonus  — 1st of the month 00:10
* daily rakeback     — every day 23:59

Each job runs its synchronous service through :func:`run_db` so the event
loop keeps serving requests.  A failing run is logged and the scheduler
keeps going; ``max_instances=1`` keeps two runs of the same job from
overlapping.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import Engine

from wagerline.database.engine import get_session, run_db
from wagerline.database.models import VipHistoryKind
from wagerline.engine.report import JobReport
from wagerline.engine.snapshot import load_platform_settings
from wagerline.services import rakeback_service, vip_service

logger = logging.getLogger(__name__)

JOB_NAMES = ("vip_weekly", "vip_monthly", "rakeback_daily")


def run_job(engine: Engine, name: str) -> JobReport:
    """Run one job synchronously by name (used by the CLI and the scheduler)."""
    with get_session(engine) as session:
        settings = load_platform_settings(session)

    if name == "vip_weekly":
        return vip_service.run_periodic_bonus_job(
            engine, VipHistoryKind.WEEKLY, settings=settings
        )
    if name == "vip_monthly":
        return vip_service.run_periodic_bonus_job(
            engine, VipHistoryKind.MONTHLY, settings=settings
        )
    if name == "rakeback_daily":
        return rakeback_service.run_daily_rakeback_job(
            engine, window_hours=settings.rakeback_window_hours
        )
    raise ValueError(f"Unknown job {name!r}; expected one of {', '.join(JOB_NAMES)}")


async def _run_scheduled(engine: Engine, name: str) -> None:
    try:
        report = await run_db(run_job, engine, name)
    except Exception:
        logger.exception("[%s] job run failed", name)
        return
    if report.failed:
        logger.warning("[%s] finished with %d failed accounts", name, report.failed)


def build_scheduler(engine: Engine, *, timezone: str = "UTC") -> AsyncIOScheduler:
    """Create an :class:`AsyncIOScheduler` with every job registered (not started)."""
    scheduler = AsyncIOScheduler(timezone=timezone)
    common = {
        "replace_existing": True,
        "coalesce": True,
        "max_instances": 1,
        "misfire_grace_time": 3600,
    }
    scheduler.add_job(
        _run_scheduled, "cron", day_of_week="mon", hour=0, minute=5,
        args=[engine, "vip_weekly"], id="vip_weekly", **common,
    )
    scheduler.add_job(
        _run_scheduled, "cron", day=1, hour=0, minute=10,
        args=[engine, "vip_monthly"], id="vip_monthly", **common,
    )
    scheduler.add_job(
        _run_scheduled, "cron", hour=23, minute=59,
        args=[engine, "rakeback_daily"], id="rakeback_daily", **common,
    )
    return scheduler


def start_scheduler(engine: Engine) -> AsyncIOScheduler:
    """Build and start the scheduler on the running event loop."""
    scheduler = build_scheduler(engine)
    scheduler.start()
    logger.info("Scheduler started with jobs: %s", ", ".join(JOB_NAMES))
    return scheduler
