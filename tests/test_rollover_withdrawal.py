"""
tests/test_rollover_withdrawal.py — Rollover Gate & Withdrawals
================================================================
End-to-end through the services: a confirmed deposit creates a wagering
requirement, bets settle against it, and withdrawal requests are gated on
it.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import balance_of, make_account
from sqlalchemy import select
from sqlalchemy.orm import Session

from wagerline.database.models import (
    LedgerEntry,
    RolloverRequirement,
    RolloverSource,
    RolloverStatus,
    SettlementAction,
    Withdrawal,
    WithdrawalStatus,
)
from wagerline.engine.errors import (
    BusinessRuleViolation,
    InsufficientFunds,
    NotFound,
    RolloverNotCompleted,
    ValidationFailed,
)
from wagerline.services import (
    deposit_service,
    rollover_service,
    settlement_service,
    withdrawal_service,
)
from wagerline.services.deposit_service import DepositConfirmed


@pytest.fixture
def engine(db_engine):
    return db_engine


_tx_counter = iter(range(1, 10_000))


def _bet(engine, config, player, amount):
    settlement_service.process_callback(engine, config, "poker-games", {
        "action": "bet",
        "player_id": player,
        "amount": amount,
        "transaction_id": f"bet-{next(_tx_counter)}",
    })


def _deposit(engine, settings, player, amount="100", reference="dep-1"):
    deposit_service.confirm_deposit(
        engine, settings, DepositConfirmed(player, Decimal(amount), reference)
    )


def _statuses(engine, player) -> list[str]:
    with Session(engine) as session:
        return list(session.scalars(
            select(RolloverRequirement.status)
            .where(RolloverRequirement.account_id == player)
            .order_by(RolloverRequirement.id)
        ).all())


# ===========================================================================
# Rollover gate
# ===========================================================================
class TestRolloverGate:
    def test_withdrawal_blocked_until_volume_reached(self, engine, settings, ledger_config):
        player = make_account(engine, balance=Decimal("500"))
        _deposit(engine, settings, player)
        _bet(engine, ledger_config, player, "150")

        with pytest.raises(RolloverNotCompleted) as exc_info:
            withdrawal_service.request_withdrawal(engine, settings, player, Decimal("50"))
        assert exc_info.value.details == {"required": "200.00", "wagered": "150.00"}
        assert balance_of(engine, player) == Decimal("450.00")
        assert _statuses(engine, player) == [RolloverStatus.ACTIVE.value]

        _bet(engine, ledger_config, player, "50")
        assert _statuses(engine, player) == [RolloverStatus.COMPLETED.value]

        result = withdrawal_service.request_withdrawal(engine, settings, player, Decimal("50"))
        assert result["status"] == WithdrawalStatus.PENDING.value
        assert balance_of(engine, player) == Decimal("350.00")

    def test_requirement_exactly_met(self, engine, settings, ledger_config):
        player = make_account(engine, balance=Decimal("500"))
        _deposit(engine, settings, player)
        _bet(engine, ledger_config, player, "200")
        withdrawal_service.request_withdrawal(engine, settings, player, Decimal("100"))
        assert balance_of(engine, player) == Decimal("300.00")

    def test_cohort_closes_only_when_fully_covered(self, engine, settings, ledger_config):
        player = make_account(engine, balance=Decimal("1000"))
        _deposit(engine, settings, player, amount="100", reference="dep-1")
        _deposit(engine, settings, player, amount="50", reference="dep-2")
        _bet(engine, ledger_config, player, "250")

        assert _statuses(engine, player) == ["ACTIVE", "ACTIVE"]
        with Session(engine) as session:
            summary = rollover_service.rollover_summary(session, player).to_dict()
        assert summary["required"] == "300.00"
        assert summary["wagered"] == "250.00"
        assert summary["remaining"] == "50.00"
        assert [r["amount_completed"] for r in summary["requirements"]] == ["200.00", "50.00"]

        _bet(engine, ledger_config, player, "50")
        assert _statuses(engine, player) == ["COMPLETED", "COMPLETED"]

    def test_bets_before_the_requirement_do_not_count(self, engine, settings, ledger_config):
        player = make_account(engine, balance=Decimal("1000"))
        _bet(engine, ledger_config, player, "500")
        _deposit(engine, settings, player)
        with pytest.raises(RolloverNotCompleted):
            withdrawal_service.request_withdrawal(engine, settings, player, Decimal("50"))

    def test_rolled_back_bets_do_not_count(self, engine, settings, ledger_config):
        player = make_account(engine, balance=Decimal("500"))
        _deposit(engine, settings, player)
        settlement_service.process_callback(engine, ledger_config, "poker-games", {
            "action": "bet", "player_id": player, "amount": "150", "transaction_id": "b-x",
        })
        settlement_service.process_callback(engine, ledger_config, "poker-games", {
            "action": "rollback", "player_id": player, "transaction_id": "rb-x",
            "rollback_transactions": [{"transaction_id": "b-x", "action": "bet"}],
        })
        _bet(engine, ledger_config, player, "100")
        with pytest.raises(RolloverNotCompleted) as exc_info:
            withdrawal_service.request_withdrawal(engine, settings, player, Decimal("50"))
        assert exc_info.value.details["wagered"] == "100.00"

    def test_gate_closes_requirements_not_closed_by_bets(self, engine):
        player = make_account(engine, balance=Decimal("100"))
        with Session(engine) as session:
            requirement = rollover_service.create_requirement(
                session, player, RolloverSource.REDEEM_CODE, None, Decimal("40"), Decimal("2"),
            )
            session.add(LedgerEntry(
                provider="poker-games",
                action=SettlementAction.BET.value,
                provider_transaction_id="b-direct",
                account_id=player,
                amount=Decimal("40"),
                balance_after=Decimal("60"),
                internal_transaction_id="PG-BET-1",
                created_at=requirement.created_at + timedelta(seconds=1),
            ))
            session.flush()
            requirement_id = requirement.id
            result = rollover_service.check_withdrawal_eligibility(session, player, Decimal("10"))
            session.commit()
        assert result.eligible
        assert result.completed_requirement_ids == (requirement_id,)
        assert _statuses(engine, player) == ["COMPLETED"]

    def test_no_requirements_means_eligible(self, db_session):
        result = rollover_service.check_withdrawal_eligibility(db_session, 1, Decimal("10"))
        assert result.eligible
        assert result.required == Decimal("0")

    def test_summary_without_requirements(self, engine):
        player = make_account(engine)
        with Session(engine) as session:
            summary = rollover_service.rollover_summary(session, player).to_dict()
        assert summary["active"] is False
        assert summary["remaining"] == "0"


# ===========================================================================
# Withdrawals
# ===========================================================================
class TestWithdrawals:
    @pytest.mark.parametrize(
        ("amount", "exc", "code"),
        [
            ("0", ValidationFailed, "invalid_amount"),
            ("19.99", BusinessRuleViolation, "withdrawal_below_minimum"),
            ("50000.01", BusinessRuleViolation, "withdrawal_above_maximum"),
        ],
    )
    def test_limits(self, engine, settings, amount, exc, code):
        player = make_account(engine, balance=Decimal("100000"))
        with pytest.raises(exc) as exc_info:
            withdrawal_service.request_withdrawal(engine, settings, player, Decimal(amount))
        assert exc_info.value.code == code

    def test_insufficient_balance(self, engine, settings):
        player = make_account(engine, balance=Decimal("30"))
        with pytest.raises(InsufficientFunds):
            withdrawal_service.request_withdrawal(engine, settings, player, Decimal("40"))
        with Session(engine) as session:
            assert session.scalars(select(Withdrawal)).all() == []

    def test_reject_refunds_balance(self, engine, settings):
        player = make_account(engine, balance=Decimal("100"))
        created = withdrawal_service.request_withdrawal(engine, settings, player, Decimal("60"))
        rejected = withdrawal_service.reject_withdrawal(engine, created["id"], "kyc")
        assert rejected["status"] == WithdrawalStatus.REJECTED.value
        assert rejected["reason"] == "kyc"
        assert balance_of(engine, player) == Decimal("100.00")

    def test_mark_paid_is_final(self, engine, settings):
        player = make_account(engine, balance=Decimal("100"))
        created = withdrawal_service.request_withdrawal(engine, settings, player, Decimal("60"))
        paid = withdrawal_service.mark_withdrawal_paid(engine, created["id"], "pix-123")
        assert paid["status"] == WithdrawalStatus.PAID.value
        assert balance_of(engine, player) == Decimal("40.00")
        with pytest.raises(BusinessRuleViolation) as exc_info:
            withdrawal_service.reject_withdrawal(engine, created["id"])
        assert exc_info.value.code == "withdrawal_not_pending"

    def test_unknown_withdrawal(self, engine):
        with pytest.raises(NotFound):
            withdrawal_service.mark_withdrawal_paid(engine, 404, "ref")
