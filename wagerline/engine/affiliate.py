"""
wagerline.engine.affiliate — CPA Level Rules
=============================================

Decides what a single referrer earns at a given depth of the invitation
chain.  The walk itself (and the once-per-depositor guard) lives in
:mod:`wagerline.services.affiliate_service`.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from wagerline.constants import CPA_MAX_LEVELS


@dataclass(frozen=True, slots=True)
class ReferrerTerms:
    """CPA configuration of one referrer."""

    cpa_available: bool
    min_deposit_for_cpa: Decimal
    level_amounts: tuple[Decimal, Decimal, Decimal]


def cpa_amount(terms: ReferrerTerms, level: int, deposit_amount: Decimal) -> Decimal:
    """Commission owed to a referrer sitting *level* hops above the depositor.

    Returns zero when CPA is disabled for the referrer, the deposit is below
    their minimum, or the level is outside ``1..CPA_MAX_LEVELS``.
    """
    if not 1 <= level <= CPA_MAX_LEVELS:
        return Decimal("0")
    if not terms.cpa_available:
        return Decimal("0")
    if deposit_amount < terms.min_deposit_for_cpa:
        return Decimal("0")
    amount = terms.level_amounts[level - 1]
    return amount if amount > 0 else Decimal("0")
