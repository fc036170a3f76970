"""
wagerline.engine.snapshot — Platform Settings Snapshot
=======================================================

Business tuning lives in the ``settings`` table.  Services never read it
ad hoc: the caller loads a :class:`PlatformSettings` once per request or job
run and passes it in, so one operation always sees one consistent set of
limits.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from wagerline.constants import to_money
from wagerline.database.models import Setting

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PlatformSettings:
    """Immutable view of the ``settings`` table."""

    min_withdrawal: Decimal = Decimal("20.00")
    max_withdrawal: Decimal = Decimal("50000.00")
    min_deposit: Decimal = Decimal("10.00")
    max_deposit: Decimal = Decimal("100000.00")
    default_rollover_active: bool = True
    default_rollover_multiplier: Decimal = Decimal("2")
    default_cpa_available: bool = True
    default_min_deposit_for_cpa: Decimal = Decimal("30.00")
    default_cpa_level_1: Decimal = Decimal("10.00")
    default_cpa_level_2: Decimal = Decimal("5.00")
    default_cpa_level_3: Decimal = Decimal("2.00")
    vip_weekly_window_days: int = 7
    vip_monthly_window_days: int = 30
    rakeback_window_hours: int = 24


# setting key → (snapshot field, parser)
_FIELDS: dict[str, tuple[str, object]] = {
    "withdrawal.min_amount": ("min_withdrawal", to_money),
    "withdrawal.max_amount": ("max_withdrawal", to_money),
    "deposit.min_amount": ("min_deposit", to_money),
    "deposit.max_amount": ("max_deposit", to_money),
    "rollover.default_active": ("default_rollover_active", bool),
    "rollover.default_multiplier": ("default_rollover_multiplier", to_money),
    "affiliate.default_cpa_available": ("default_cpa_available", bool),
    "affiliate.default_min_deposit_for_cpa": ("default_min_deposit_for_cpa", to_money),
    "affiliate.default_cpa_level_1": ("default_cpa_level_1", to_money),
    "affiliate.default_cpa_level_2": ("default_cpa_level_2", to_money),
    "affiliate.default_cpa_level_3": ("default_cpa_level_3", to_money),
    "vip.weekly_window_days": ("vip_weekly_window_days", int),
    "vip.monthly_window_days": ("vip_monthly_window_days", int),
    "rakeback.window_hours": ("rakeback_window_hours", int),
}


def load_platform_settings(session: Session) -> PlatformSettings:
    """Build a snapshot from the ``settings`` rows.

    Missing keys keep the dataclass defaults.  A row whose JSON cannot be
    parsed is logged and ignored rather than taking the whole platform down.
    """
    rows = session.scalars(select(Setting).where(Setting.key.in_(_FIELDS))).all()
    values: dict[str, object] = {}
    for row in rows:
        field_name, parser = _FIELDS[row.key]
        try:
            values[field_name] = parser(json.loads(row.value_json))
        except (ValueError, TypeError):
            logger.warning("Ignoring unparseable setting %s=%r", row.key, row.value_json)
    return PlatformSettings(**values)
