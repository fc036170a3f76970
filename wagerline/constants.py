"""
wagerline.constants — Shared Constants & Money Helpers
=======================================================

Single source of truth for money quantization and the small set of fixed
limits shared by the engine, services, and API layer.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------
CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest magnitude a Numeric(18, 2) column holds.
MAX_MONEY = Decimal("9999999999999999.99")


def to_money(value: object) -> Decimal:
    """Coerce *value* to a 2-place :class:`Decimal`.

    Floats go through ``str()`` first so ``0.1`` becomes ``Decimal("0.10")``
    rather than its binary expansion.

    Raises
    ------
    ValueError
        If *value* cannot be parsed, is not finite, or does not fit a
        ``Numeric(18, 2)`` column.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Monetary amount out of range: {value!r}") from exc
    if abs(amount) > MAX_MONEY:
        raise ValueError(f"Monetary amount out of range: {value!r}")
    return amount


# ---------------------------------------------------------------------------
# Affiliate cascade
# ---------------------------------------------------------------------------
CPA_MAX_LEVELS = 3

# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------
GAME_HISTORY_HOURS: tuple[int, ...] = (3, 12, 24, 48, 168)
DEFAULT_GAME_HISTORY_HOURS = 3

# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
AFFILIATE_CODE_LENGTH = 8
AFFILIATE_CODE_ATTEMPTS = 5
