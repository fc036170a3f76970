"""
wagerline.services.withdrawal_service — Withdrawal Requests
============================================================

A withdrawal request is one transaction: limits → rollover gate →
conditional balance decrement → PENDING row.  If any step fails nothing is
written, and the rollover requirements the gate would have closed stay
ACTIVE.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from wagerline.constants import to_money
from wagerline.database.engine import get_session
from wagerline.database.models import Withdrawal, WithdrawalStatus, utcnow
from wagerline.engine.errors import BusinessRuleViolation, NotFound, ValidationFailed
from wagerline.engine.snapshot import PlatformSettings
from wagerline.services import account_store, rollover_service

logger = logging.getLogger(__name__)


def _as_dict(withdrawal: Withdrawal) -> dict:
    return {
        "id": withdrawal.id,
        "account_id": withdrawal.account_id,
        "amount": str(to_money(withdrawal.amount)),
        "status": withdrawal.status,
        "reference": withdrawal.reference,
        "reason": withdrawal.reason,
    }


def request_withdrawal(
    engine: Engine,
    settings: PlatformSettings,
    account_id: int,
    amount: Decimal,
) -> dict:
    """Reserve *amount* from the main balance for payout.

    Raises
    ------
    ValidationFailed
        Non-positive amount.
    BusinessRuleViolation
        ``withdrawal_below_minimum`` / ``withdrawal_above_maximum``.
    RolloverNotCompleted
    InsufficientFunds
    AccountNotFound, AccountInactive
    """
    try:
        amount = to_money(amount)
    except ValueError:
        raise ValidationFailed("amount must be a number", code="invalid_amount") from None
    if amount <= 0:
        raise ValidationFailed("amount must be greater than zero", code="invalid_amount")
    if amount < settings.min_withdrawal:
        raise BusinessRuleViolation(
            f"minimum withdrawal is {settings.min_withdrawal}",
            code="withdrawal_below_minimum",
            details={"minimum": str(settings.min_withdrawal)},
        )
    if amount > settings.max_withdrawal:
        raise BusinessRuleViolation(
            f"maximum withdrawal is {settings.max_withdrawal}",
            code="withdrawal_above_maximum",
            details={"maximum": str(settings.max_withdrawal)},
        )

    with get_session(engine) as session:
        account_store.resolve_active(session, account_id, lock=True)
        rollover_service.check_withdrawal_eligibility(session, account_id, amount)
        account_store.decrement(session, account_id, amount)
        withdrawal = Withdrawal(
            account_id=account_id,
            amount=amount,
            status=WithdrawalStatus.PENDING.value,
            created_at=utcnow(),
        )
        session.add(withdrawal)
        session.flush()
        result = _as_dict(withdrawal)

    logger.info("Withdrawal %s requested by account %s: %s", result["id"], account_id, amount)
    return result


def _pending(session: Session, withdrawal_id: int) -> Withdrawal:
    withdrawal = session.scalar(
        select(Withdrawal).where(Withdrawal.id == withdrawal_id).with_for_update()
    )
    if withdrawal is None:
        raise NotFound(f"withdrawal {withdrawal_id} not found", code="withdrawal_not_found")
    if withdrawal.status != WithdrawalStatus.PENDING.value:
        raise BusinessRuleViolation(
            f"withdrawal {withdrawal_id} is {withdrawal.status}",
            code="withdrawal_not_pending",
        )
    return withdrawal


def reject_withdrawal(engine: Engine, withdrawal_id: int, reason: str | None = None) -> dict:
    """PENDING → REJECTED, returning the reserved amount to the balance."""
    with get_session(engine) as session:
        withdrawal = _pending(session, withdrawal_id)
        withdrawal.status = WithdrawalStatus.REJECTED.value
        withdrawal.reason = reason
        account_store.increment(session, withdrawal.account_id, to_money(withdrawal.amount))
        result = _as_dict(withdrawal)
    logger.info("Withdrawal %s rejected (%s) — amount refunded", withdrawal_id, reason)
    return result


def mark_withdrawal_paid(engine: Engine, withdrawal_id: int, reference: str) -> dict:
    """PENDING → PAID once the payout has been sent."""
    with get_session(engine) as session:
        withdrawal = _pending(session, withdrawal_id)
        withdrawal.status = WithdrawalStatus.PAID.value
        withdrawal.reference = reference
        session.flush()
        result = _as_dict(withdrawal)
    logger.info("Withdrawal %s paid (ref %s)", withdrawal_id, reference)
    return result
