"""
wagerline.engine.vip — VIP Tier Planning
=========================================

Pure tier arithmetic.  Given the VIP ladder, an account's current tier and
its cumulative wagering volume, :func:`plan_upgrade` returns every tier the
account crosses so each one's upgrade bonus is granted, not only the last.
Tiers never go down.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

__all__ = ["LadderRung", "VipUpgradePlan", "next_rung", "plan_upgrade", "rung_for_tier"]


@dataclass(frozen=True, slots=True)
class LadderRung:
    level_id: int
    tier: int
    goal: Decimal
    upgrade_bonus: Decimal = Decimal("0")
    weekly_bonus: Decimal = Decimal("0")
    monthly_bonus: Decimal = Decimal("0")


@dataclass
class VipUpgradePlan:
    current_tier: int
    target_tier: int
    steps: list[LadderRung] = field(default_factory=list)

    @property
    def upgraded(self) -> bool:
        return self.target_tier > self.current_tier

    @property
    def total_bonus(self) -> Decimal:
        return sum((s.upgrade_bonus for s in self.steps), Decimal("0"))


def _ordered(ladder: Sequence[LadderRung]) -> list[LadderRung]:
    return sorted(ladder, key=lambda r: r.tier)


def plan_upgrade(
    ladder: Sequence[LadderRung],
    current_tier: int,
    volume: Decimal,
) -> VipUpgradePlan:
    """Work out which tiers *volume* unlocks above *current_tier*.

    The target is the highest tier whose ``goal <= volume``.  Every rung in
    ``(current_tier, target]`` becomes a step, in ascending order.
    """
    rungs = _ordered(ladder)
    reached = [r for r in rungs if r.goal <= volume]
    if not reached or reached[-1].tier <= current_tier:
        return VipUpgradePlan(current_tier=current_tier, target_tier=current_tier)

    target = reached[-1].tier
    steps = [r for r in rungs if current_tier < r.tier <= target]
    return VipUpgradePlan(current_tier=current_tier, target_tier=target, steps=steps)


def rung_for_tier(ladder: Sequence[LadderRung], tier: int) -> LadderRung | None:
    for rung in ladder:
        if rung.tier == tier:
            return rung
    return None


def next_rung(ladder: Sequence[LadderRung], tier: int) -> LadderRung | None:
    """The first rung above *tier*, or ``None`` at the top of the ladder."""
    for rung in _ordered(ladder):
        if rung.tier > tier:
            return rung
    return None
