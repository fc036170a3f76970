"""
wagerline.services.redeem_service — Promotional Redeem Codes
=============================================================

A code has a global ``max_uses`` budget and may be redeemed once per
account.  The budget is consumed with a conditional
``UPDATE … SET used_count = used_count + 1 WHERE used_count < max_uses``
so two players racing for the last use cannot both win.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from wagerline.constants import to_money
from wagerline.database.engine import get_session
from wagerline.database.models import RedeemCode, RedeemCodeHistory, RolloverSource, utcnow
from wagerline.engine.errors import (
    BusinessRuleViolation,
    NotFound,
    RedeemCodeLimitReached,
)
from wagerline.services import account_store, rollover_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RedeemOutcome:
    code: str
    amount: Decimal
    balance: Decimal
    rollover_requirement_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "amount": str(self.amount),
            "balance": str(self.balance),
            "rollover_requirement_id": self.rollover_requirement_id,
        }


def _claim_use(session: Session, code_id: int) -> None:
    result = session.execute(
        update(RedeemCode)
        .where(RedeemCode.id == code_id, RedeemCode.used_count < RedeemCode.max_uses)
        .values(used_count=RedeemCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise RedeemCodeLimitReached("this code has no uses left")


def redeem_code(engine: Engine, account_id: int, code: str) -> RedeemOutcome:
    """Credit the code's amount to *account_id*.

    Raises
    ------
    NotFound
        ``redeem_code_not_found`` (unknown or inactive code).
    BusinessRuleViolation
        ``redeem_code_already_used`` by this account.
    RedeemCodeLimitReached
    AccountNotFound, AccountInactive
    """
    normalized = code.strip()
    with get_session(engine) as session:
        account_store.resolve_active(session, account_id, lock=True)
        redeem = session.scalar(
            select(RedeemCode).where(RedeemCode.code == normalized, RedeemCode.active.is_(True))
        )
        if redeem is None:
            raise NotFound(f"code {normalized!r} not found", code="redeem_code_not_found")

        used = session.scalar(
            select(RedeemCodeHistory.id).where(
                RedeemCodeHistory.redeem_code_id == redeem.id,
                RedeemCodeHistory.account_id == account_id,
            )
        )
        if used is not None:
            raise BusinessRuleViolation(
                "code already redeemed by this account", code="redeem_code_already_used"
            )

        _claim_use(session, redeem.id)
        amount = to_money(redeem.amount)
        session.add(RedeemCodeHistory(
            redeem_code_id=redeem.id,
            account_id=account_id,
            amount=amount,
            created_at=utcnow(),
        ))
        balance = account_store.increment(session, account_id, amount)

        requirement_id = None
        multiplier = Decimal(redeem.rollover_multiplier or 0)
        if multiplier > 0:
            requirement = rollover_service.create_requirement(
                session, account_id, RolloverSource.REDEEM_CODE, redeem.id,
                amount * multiplier, multiplier,
            )
            requirement_id = requirement.id

    logger.info("Account %s redeemed code %r for %s", account_id, normalized, amount)
    return RedeemOutcome(
        code=normalized,
        amount=amount,
        balance=balance,
        rollover_requirement_id=requirement_id,
    )
