"""
wagerline.engine.rollover — FIFO Wagering Allocation
=====================================================

Pure allocation of accrued wagering volume across a player's open
requirements.  No DB I/O; :mod:`wagerline.services.rollover_service` loads
the rows, calls :func:`allocate_fifo`, and writes the result back.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

__all__ = ["Allocation", "RequirementSlot", "allocate_fifo", "outstanding"]


@dataclass(frozen=True, slots=True)
class RequirementSlot:
    """The parts of a requirement the allocator needs, oldest first."""

    requirement_id: int
    amount_required: Decimal


@dataclass(frozen=True, slots=True)
class Allocation:
    requirement_id: int
    amount_completed: Decimal
    completed: bool


def allocate_fifo(slots: Sequence[RequirementSlot], volume: Decimal) -> list[Allocation]:
    """Spread *volume* over *slots* oldest-first.

    Each requirement is filled completely before the next one receives
    anything; the last requirement touched may be partially credited, and
    everything after it gets zero.
    """
    remaining = max(volume, Decimal("0"))
    result: list[Allocation] = []
    for slot in slots:
        credited = min(remaining, slot.amount_required)
        remaining -= credited
        result.append(Allocation(
            requirement_id=slot.requirement_id,
            amount_completed=credited,
            completed=credited >= slot.amount_required,
        ))
    return result


def outstanding(slots: Sequence[RequirementSlot]) -> Decimal:
    """Total wagering needed to clear every slot."""
    return sum((s.amount_required for s in slots), Decimal("0"))
