"""
tests/test_vip_service.py — VIP Progression, Periodic Bonuses, Redemption
==========================================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from conftest import balance_of, make_account, make_vip_ladder
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from wagerline.database.models import (
    Account,
    LedgerEntry,
    SettlementAction,
    VipHistory,
    VipHistoryKind,
    utcnow,
)
from wagerline.engine.errors import BusinessRuleViolation, ValidationFailed
from wagerline.services import settlement_service, vip_service

NOW = datetime(2026, 3, 2, 0, 5, tzinfo=timezone.utc)


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def ladder(engine) -> dict[int, int]:
    return make_vip_ladder(engine, [(1, "100", "5"), (2, "500", "20"), (3, "2000", "50")])


def _bet(engine, config, player, amount, txid):
    settlement_service.process_callback(engine, config, "poker-games", {
        "action": "bet", "player_id": player, "amount": amount, "transaction_id": txid,
    })


def _history(engine, player, kind: VipHistoryKind | None = None) -> list[VipHistory]:
    with Session(engine) as session:
        stmt = select(VipHistory).where(VipHistory.account_id == player).order_by(VipHistory.id)
        if kind is not None:
            stmt = stmt.where(VipHistory.kind == kind.value)
        return list(session.scalars(stmt).all())


def _vip(engine, player) -> int:
    with Session(engine) as session:
        return session.get(Account, player).vip


# ===========================================================================
# Upgrades
# ===========================================================================
class TestReevaluate:
    def test_traversal_grants_every_crossed_tier(self, engine, ledger_config, ladder):
        player = make_account(engine, balance=Decimal("1000"))
        _bet(engine, ledger_config, player, "600", "b-1")

        assert _vip(engine, player) == 2
        history = _history(engine, player, VipHistoryKind.UPGRADE)
        assert [h.vip_level_id for h in history] == [ladder[1], ladder[2]]
        assert [h.bonus_amount for h in history] == [Decimal("5"), Decimal("20")]
        assert balance_of(engine, player, "vip_balance") == Decimal("25.00")

    def test_upgrades_accumulate_across_bets(self, engine, ledger_config, ladder):
        player = make_account(engine, balance=Decimal("3000"))
        _bet(engine, ledger_config, player, "99.5", "b-1")
        assert _vip(engine, player) == 0
        _bet(engine, ledger_config, player, "0.5", "b-2")
        assert _vip(engine, player) == 1
        _bet(engine, ledger_config, player, "1900", "b-3")
        assert _vip(engine, player) == 3
        assert len(_history(engine, player, VipHistoryKind.UPGRADE)) == 3
        assert balance_of(engine, player, "vip_balance") == Decimal("75.00")

    def test_replayed_bet_does_not_upgrade_twice(self, engine, ledger_config, ladder):
        player = make_account(engine, balance=Decimal("1000"))
        _bet(engine, ledger_config, player, "100", "b-1")
        _bet(engine, ledger_config, player, "100", "b-1")
        assert _vip(engine, player) == 1
        assert balance_of(engine, player, "vip_balance") == Decimal("5.00")

    def test_wins_do_not_count_as_volume(self, engine, ledger_config, ladder):
        player = make_account(engine, balance=Decimal("0"))
        settlement_service.process_callback(engine, ledger_config, "poker-games", {
            "action": "win", "player_id": player, "amount": "5000", "transaction_id": "w-1",
        })
        assert _vip(engine, player) == 0

    def test_reads_tier_from_the_locked_row(self, engine, ladder):
        player = make_account(engine)
        with Session(engine) as session:
            stale = session.get(Account, player)
            assert stale.vip == 0
            session.execute(
                update(Account)
                .where(Account.id == player)
                .values(vip=2)
                .execution_options(synchronize_session=False)
            )
            session.add(LedgerEntry(
                provider="poker-games",
                action=SettlementAction.BET.value,
                provider_transaction_id="b-1",
                account_id=player,
                amount=Decimal("150"),
                balance_after=Decimal("0"),
                internal_transaction_id="PG-BET-1",
                created_at=utcnow(),
            ))
            session.flush()

            plan = vip_service.reevaluate(session, player)
            session.commit()

        assert not plan.upgraded
        assert _vip(engine, player) == 2
        assert _history(engine, player) == []

    def test_progress(self, engine, ledger_config, ladder):
        player = make_account(engine, balance=Decimal("1000"))
        _bet(engine, ledger_config, player, "150", "b-1")
        with Session(engine) as session:
            progress = vip_service.vip_progress(session, player)
        assert progress == {
            "account_id": player,
            "vip": 1,
            "volume": "150.00",
            "next_tier": 2,
            "next_goal": "500.00",
            "remaining": "350.00",
        }


# ===========================================================================
# Weekly / monthly jobs
# ===========================================================================
class TestPeriodicBonusJob:
    def test_weekly_grants_once_per_window(self, engine, ladder):
        player = make_account(engine, vip=2)
        report = vip_service.run_periodic_bonus_job(engine, VipHistoryKind.WEEKLY, now=NOW)
        assert (report.processed, report.created, report.failed) == (1, 1, 0)
        assert balance_of(engine, player, "vip_balance") == Decimal("2.00")

        again = vip_service.run_periodic_bonus_job(
            engine, "weekly", now=NOW + timedelta(days=3)
        )
        assert (again.created, again.skipped) == (0, 1)

        next_week = vip_service.run_periodic_bonus_job(
            engine, "weekly", now=NOW + timedelta(days=7, minutes=1)
        )
        assert next_week.created == 1
        assert balance_of(engine, player, "vip_balance") == Decimal("4.00")

    def test_monthly_uses_monthly_bonus(self, engine, ladder):
        player = make_account(engine, vip=3)
        report = vip_service.run_periodic_bonus_job(engine, VipHistoryKind.MONTHLY, now=NOW)
        assert report.job == "vip_monthly"
        assert report.created == 1
        assert balance_of(engine, player, "vip_balance") == Decimal("30.00")

    def test_weekly_and_monthly_are_independent(self, engine, ladder):
        player = make_account(engine, vip=1)
        vip_service.run_periodic_bonus_job(engine, "weekly", now=NOW)
        vip_service.run_periodic_bonus_job(engine, "monthly", now=NOW)
        assert len(_history(engine, player)) == 2

    def test_ineligible_accounts_are_not_selected(self, engine, ladder):
        make_account(engine, vip=0)
        make_account(engine, vip=2, status=False)
        make_account(engine, vip=2, banned=True)
        report = vip_service.run_periodic_bonus_job(engine, "weekly", now=NOW)
        assert report.processed == 0

    def test_one_failure_does_not_block_others(self, engine, ladder, monkeypatch):
        first = make_account(engine, vip=1)
        second = make_account(engine, vip=1)
        original = vip_service._grant_periodic_bonus

        def _flaky(engine_, account_id, *args):
            if account_id == first:
                raise RuntimeError("db hiccup")
            return original(engine_, account_id, *args)

        monkeypatch.setattr(vip_service, "_grant_periodic_bonus", _flaky)
        report = vip_service.run_periodic_bonus_job(engine, "weekly", now=NOW)

        assert (report.processed, report.created, report.failed) == (2, 1, 1)
        assert report.failures[0]["account_id"] == first
        assert balance_of(engine, first, "vip_balance") == Decimal("0.00")
        assert balance_of(engine, second, "vip_balance") == Decimal("1.00")

    def test_upgrade_is_not_a_periodic_kind(self, engine):
        with pytest.raises(ValidationFailed) as exc_info:
            vip_service.run_periodic_bonus_job(engine, VipHistoryKind.UPGRADE)
        assert exc_info.value.code == "invalid_bonus_kind"


# ===========================================================================
# Redemption
# ===========================================================================
class TestRedeemVipBonus:
    def test_moves_bonus_to_main_balance(self, engine, ledger_config, ladder):
        player = make_account(engine, balance=Decimal("1000"))
        _bet(engine, ledger_config, player, "600", "b-1")

        balances = vip_service.redeem_vip_bonus(engine, player, "upgrade", Decimal("10"))
        assert balances.balance == Decimal("410.00")
        assert balances.vip_balance == Decimal("15.00")

        with Session(engine) as session:
            summary = vip_service.vip_bonus_summary(session, player)
        assert summary["upgrade"] == {"granted": "25.00", "redeemed": "10.00", "available": "15.00"}
        assert summary["weekly"]["available"] == "0.00"

    def test_cannot_redeem_more_than_granted_of_that_kind(self, engine, ledger_config, ladder):
        player = make_account(engine, balance=Decimal("1000"))
        _bet(engine, ledger_config, player, "600", "b-1")
        with pytest.raises(BusinessRuleViolation) as exc_info:
            vip_service.redeem_vip_bonus(engine, player, "weekly", Decimal("1"))
        assert exc_info.value.code == "vip_bonus_not_available"
        assert balance_of(engine, player, "vip_balance") == Decimal("25.00")

    @pytest.mark.parametrize(
        ("bonus_type", "amount", "code"),
        [("daily", "1", "invalid_bonus_type"), ("upgrade", "0", "invalid_amount")],
    )
    def test_validation(self, engine, bonus_type, amount, code):
        player = make_account(engine)
        with pytest.raises(ValidationFailed) as exc_info:
            vip_service.redeem_vip_bonus(engine, player, bonus_type, Decimal(amount))
        assert exc_info.value.code == code
