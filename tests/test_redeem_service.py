"""
tests/test_redeem_service.py — Promotional Redeem Codes
========================================================
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import balance_of, make_account
from sqlalchemy import select
from sqlalchemy.orm import Session

from wagerline.database.models import RedeemCode, RolloverRequirement
from wagerline.engine.errors import (
    AccountInactive,
    BusinessRuleViolation,
    NotFound,
    RedeemCodeLimitReached,
)
from wagerline.services import redeem_service


@pytest.fixture
def engine(db_engine):
    return db_engine


def _make_code(engine, code="WELCOME", amount="15", max_uses=2, multiplier="0", active=True):
    with Session(engine) as session:
        session.add(RedeemCode(
            code=code,
            amount=Decimal(amount),
            max_uses=max_uses,
            rollover_multiplier=Decimal(multiplier),
            active=active,
        ))
        session.commit()


def _used_count(engine, code="WELCOME") -> int:
    with Session(engine) as session:
        return session.scalar(select(RedeemCode.used_count).where(RedeemCode.code == code))


class TestRedeemCode:
    def test_credits_balance_and_consumes_a_use(self, engine):
        _make_code(engine)
        player = make_account(engine, balance=Decimal("5"))
        outcome = redeem_service.redeem_code(engine, player, " WELCOME ")

        assert outcome.to_dict() == {
            "code": "WELCOME",
            "amount": "15.00",
            "balance": "20.00",
            "rollover_requirement_id": None,
        }
        assert _used_count(engine) == 1

    def test_once_per_account(self, engine):
        _make_code(engine)
        player = make_account(engine)
        redeem_service.redeem_code(engine, player, "WELCOME")
        with pytest.raises(BusinessRuleViolation) as exc_info:
            redeem_service.redeem_code(engine, player, "WELCOME")
        assert exc_info.value.code == "redeem_code_already_used"
        assert balance_of(engine, player) == Decimal("15.00")
        assert _used_count(engine) == 1

    def test_global_limit(self, engine):
        _make_code(engine, max_uses=1)
        first = make_account(engine)
        second = make_account(engine)
        redeem_service.redeem_code(engine, first, "WELCOME")
        with pytest.raises(RedeemCodeLimitReached):
            redeem_service.redeem_code(engine, second, "WELCOME")
        assert balance_of(engine, second) == Decimal("0.00")

    def test_rollover_multiplier_creates_requirement(self, engine):
        _make_code(engine, amount="10", multiplier="5")
        player = make_account(engine)
        outcome = redeem_service.redeem_code(engine, player, "WELCOME")
        with Session(engine) as session:
            requirement = session.get(RolloverRequirement, outcome.rollover_requirement_id)
        assert requirement.amount_required == Decimal("50")
        assert requirement.source_type == "redeem_code"

    @pytest.mark.parametrize("kwargs", [{"code": "OTHER"}, {"active": False}])
    def test_unknown_or_inactive_code(self, engine, kwargs):
        _make_code(engine, **kwargs)
        player = make_account(engine)
        with pytest.raises(NotFound) as exc_info:
            redeem_service.redeem_code(engine, player, "WELCOME")
        assert exc_info.value.code == "redeem_code_not_found"

    def test_inactive_account(self, engine):
        _make_code(engine)
        player = make_account(engine, status=False)
        with pytest.raises(AccountInactive):
            redeem_service.redeem_code(engine, player, "WELCOME")
        assert _used_count(engine) == 0
