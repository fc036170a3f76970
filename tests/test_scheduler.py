"""
tests/test_scheduler.py — Batch Job Wiring
===========================================
"""

from __future__ import annotations

import asyncio

import pytest
from conftest import make_account, make_vip_ladder

from wagerline.jobs import scheduler


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestBuildScheduler:
    def test_registers_every_job(self, db_engine):
        sched = scheduler.build_scheduler(db_engine)
        jobs = {job.id: job for job in sched.get_jobs()}
        assert set(jobs) == set(scheduler.JOB_NAMES)
        assert jobs["vip_weekly"].args == (db_engine, "vip_weekly")
        assert jobs["vip_weekly"].max_instances == 1
        assert jobs["vip_weekly"].coalesce is True

    def test_cron_fields(self, db_engine):
        jobs = {job.id: job for job in scheduler.build_scheduler(db_engine).get_jobs()}
        weekly = {f.name: str(f) for f in jobs["vip_weekly"].trigger.fields}
        monthly = {f.name: str(f) for f in jobs["vip_monthly"].trigger.fields}
        daily = {f.name: str(f) for f in jobs["rakeback_daily"].trigger.fields}
        assert (weekly["day_of_week"], weekly["hour"], weekly["minute"]) == ("mon", "0", "5")
        assert (monthly["day"], monthly["hour"], monthly["minute"]) == ("1", "0", "10")
        assert (daily["hour"], daily["minute"]) == ("23", "59")


class TestRunJob:
    def test_dispatches_by_name(self, db_engine):
        make_vip_ladder(db_engine, [(1, "100", "5")])
        make_account(db_engine, vip=1)
        report = scheduler.run_job(db_engine, "vip_weekly")
        assert report.job == "vip_weekly"
        assert report.created == 1

    def test_rakeback_with_no_tiers(self, db_engine):
        assert scheduler.run_job(db_engine, "rakeback_daily").processed == 0

    def test_unknown_job(self, db_engine):
        with pytest.raises(ValueError):
            scheduler.run_job(db_engine, "hourly_cashback")

    def test_scheduled_run_swallows_failures(self, db_engine, caplog):
        _run(scheduler._run_scheduled(db_engine, "hourly_cashback"))
        assert "job run failed" in caplog.text
