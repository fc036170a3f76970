"""
wagerline.services.rollover_service — Rollover Requirement Tracker
===================================================================

Wagering obligations created by deposits, deposit bonuses and redeem codes.
All ACTIVE requirements of an account form one cohort measured from the
earliest ACTIVE ``created_at``: volume accrued since then is allocated FIFO
across the cohort (:func:`wagerline.engine.rollover.allocate_fifo`).

Progress is recomputed from the ledger rather than accumulated, so a bet
that is replayed or later reversed can never be counted twice.  The cohort
is closed as a whole, which keeps the measurement window from moving
forward while older bets are still being allocated.

Every function takes the caller's session and never commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from wagerline.constants import to_money
from wagerline.database.models import (
    RolloverRequirement,
    RolloverSource,
    RolloverStatus,
    as_utc,
    utcnow,
)
from wagerline.engine.errors import RolloverNotCompleted
from wagerline.engine.rollover import RequirementSlot, allocate_fifo, outstanding
from wagerline.services.wagering import bet_volume

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WithdrawalEligibility:
    """Outcome of a successful eligibility check."""

    account_id: int
    requested_amount: Decimal
    required: Decimal
    wagered: Decimal
    completed_requirement_ids: tuple[int, ...] = ()

    @property
    def eligible(self) -> bool:
        return self.wagered >= self.required


@dataclass
class RolloverSummary:
    account_id: int
    active: bool
    required: Decimal = Decimal("0")
    wagered: Decimal = Decimal("0")
    requirements: list[dict] = field(default_factory=list)

    @property
    def remaining(self) -> Decimal:
        return max(self.required - self.wagered, Decimal("0"))

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "active": self.active,
            "required": str(self.required),
            "wagered": str(min(self.wagered, self.required)),
            "remaining": str(self.remaining),
            "requirements": self.requirements,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _active_requirements(
    session: Session, account_id: int, *, lock: bool = False
) -> list[RolloverRequirement]:
    stmt = (
        select(RolloverRequirement)
        .where(
            RolloverRequirement.account_id == account_id,
            RolloverRequirement.status == RolloverStatus.ACTIVE.value,
        )
        .order_by(RolloverRequirement.created_at, RolloverRequirement.id)
    )
    if lock:
        stmt = stmt.with_for_update()
    return list(session.scalars(stmt).all())


def _slots(requirements: list[RolloverRequirement]) -> list[RequirementSlot]:
    return [
        RequirementSlot(requirement_id=r.id, amount_required=to_money(r.amount_required))
        for r in requirements
    ]


def _cohort_volume(session: Session, requirements: list[RolloverRequirement]) -> Decimal:
    if not requirements:
        return Decimal("0")
    since = min(as_utc(r.created_at) for r in requirements)
    return bet_volume(session, requirements[0].account_id, since=since)


def _apply(
    requirements: list[RolloverRequirement],
    volume: Decimal,
    *,
    close_all: bool,
    now: datetime,
) -> list[int]:
    allocations = {a.requirement_id: a for a in allocate_fifo(_slots(requirements), volume)}
    closed: list[int] = []
    for req in requirements:
        alloc = allocations[req.id]
        req.amount_completed = alloc.amount_completed
        if close_all:
            req.status = RolloverStatus.COMPLETED.value
            req.completed_at = now
            closed.append(req.id)
    return closed


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def create_requirement(
    session: Session,
    account_id: int,
    source_type: RolloverSource | str,
    source_id: int | None,
    amount_required: Decimal,
    multiplier: Decimal,
) -> RolloverRequirement:
    """Insert an ACTIVE requirement of *amount_required*."""
    requirement = RolloverRequirement(
        account_id=account_id,
        source_type=str(source_type),
        source_id=source_id,
        amount_required=to_money(amount_required),
        amount_completed=Decimal("0"),
        multiplier=multiplier,
        status=RolloverStatus.ACTIVE.value,
        created_at=utcnow(),
    )
    session.add(requirement)
    session.flush()
    logger.info(
        "Rollover requirement %s created for account %s: %s (%s × %s)",
        requirement.id, account_id, requirement.amount_required, source_type, multiplier,
    )
    return requirement


def record_wagering(session: Session, account_id: int) -> list[int]:
    """Refresh progress of the account's ACTIVE cohort after a bet.

    Returns the ids of requirements closed by this call (the whole cohort
    once its total is covered, otherwise none).
    """
    requirements = _active_requirements(session, account_id, lock=True)
    if not requirements:
        return []
    volume = _cohort_volume(session, requirements)
    covered = volume >= outstanding(_slots(requirements))
    closed = _apply(requirements, volume, close_all=covered, now=utcnow())
    if closed:
        logger.info("Rollover cohort %s completed for account %s", closed, account_id)
    return closed


def check_withdrawal_eligibility(
    session: Session,
    account_id: int,
    requested_amount: Decimal,
) -> WithdrawalEligibility:
    """Gate a withdrawal on the account's open wagering requirements.

    Locks the ACTIVE rows, compares volume since the earliest of them with
    their total, and either raises or closes them FIFO.  Must run in the
    same transaction as the withdrawal insert and balance decrement.

    Raises
    ------
    RolloverNotCompleted
        Accrued volume is below the outstanding total.
    """
    requirements = _active_requirements(session, account_id, lock=True)
    if not requirements:
        return WithdrawalEligibility(
            account_id=account_id,
            requested_amount=requested_amount,
            required=Decimal("0"),
            wagered=Decimal("0"),
        )

    slots = _slots(requirements)
    required = outstanding(slots)
    wagered = _cohort_volume(session, requirements)
    if wagered < required:
        raise RolloverNotCompleted(
            "wagering requirement not met",
            details={"required": str(required), "wagered": str(wagered)},
        )

    closed = _apply(requirements, wagered, close_all=True, now=utcnow())
    logger.info(
        "Withdrawal of %s cleared rollover for account %s (%s/%s)",
        requested_amount, account_id, wagered, required,
    )
    return WithdrawalEligibility(
        account_id=account_id,
        requested_amount=requested_amount,
        required=required,
        wagered=wagered,
        completed_requirement_ids=tuple(closed),
    )


def rollover_summary(session: Session, account_id: int) -> RolloverSummary:
    """Read-only view of the ACTIVE cohort for reporting endpoints."""
    requirements = _active_requirements(session, account_id)
    if not requirements:
        return RolloverSummary(account_id=account_id, active=False)

    volume = _cohort_volume(session, requirements)
    allocations = allocate_fifo(_slots(requirements), volume)
    rows = [
        {
            "id": req.id,
            "source_type": req.source_type,
            "source_id": req.source_id,
            "amount_required": str(to_money(req.amount_required)),
            "amount_completed": str(alloc.amount_completed),
            "multiplier": str(req.multiplier),
            "created_at": req.created_at.isoformat() if req.created_at else None,
        }
        for req, alloc in zip(requirements, allocations, strict=True)
    ]
    return RolloverSummary(
        account_id=account_id,
        active=True,
        required=outstanding(_slots(requirements)),
        wagered=volume,
        requirements=rows,
    )
