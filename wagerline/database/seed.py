"""
wagerline.database.seed — Default Settings & VIP Ladder Seeder
===============================================================

Baseline business settings and a starter VIP ladder, seeded on first
startup so a fresh database can settle callbacks immediately.

Idempotent — only inserts keys that don't already exist, and only seeds
the VIP ladder when the ``vip_levels`` table is empty.  Operator edits are
never overwritten.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from wagerline.database.models import Setting, VipLevel

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "withdrawal.min_amount": ("20.00", "withdrawal", "Minimum withdrawal amount"),
    "withdrawal.max_amount": ("50000.00", "withdrawal", "Maximum withdrawal amount"),
    "deposit.min_amount": ("10.00", "deposit", "Minimum deposit amount"),
    "deposit.max_amount": ("100000.00", "deposit", "Maximum deposit amount"),
    "rollover.default_active": (
        True, "rollover", "Create a wagering requirement for every confirmed deposit",
    ),
    "rollover.default_multiplier": (
        "2", "rollover", "Deposit multiplier used when the account has no override",
    ),
    "affiliate.default_cpa_available": (
        True, "affiliate", "New accounts may earn CPA commissions",
    ),
    "affiliate.default_min_deposit_for_cpa": (
        "30.00", "affiliate", "Minimum referred deposit that pays CPA",
    ),
    "affiliate.default_cpa_level_1": ("10.00", "affiliate", "CPA paid to the direct referrer"),
    "affiliate.default_cpa_level_2": ("5.00", "affiliate", "CPA paid to the second-level referrer"),
    "affiliate.default_cpa_level_3": ("2.00", "affiliate", "CPA paid to the third-level referrer"),
    "vip.weekly_window_days": (7, "vip", "Rolling window for the weekly VIP bonus"),
    "vip.monthly_window_days": (30, "vip", "Rolling window for the monthly VIP bonus"),
    "rakeback.window_hours": (24, "rakeback", "Wagering window summed by the daily rakeback job"),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``.

Monetary values are stored as strings so they survive JSON without
passing through a float."""


DEFAULT_VIP_LEVELS: list[dict[str, object]] = [
    {"tier": 1, "name": "Bronze", "goal": "1000", "upgrade_bonus": "10",
     "weekly_bonus": "2", "monthly_bonus": "5"},
    {"tier": 2, "name": "Silver", "goal": "5000", "upgrade_bonus": "25",
     "weekly_bonus": "5", "monthly_bonus": "15"},
    {"tier": 3, "name": "Gold", "goal": "25000", "upgrade_bonus": "100",
     "weekly_bonus": "15", "monthly_bonus": "50"},
    {"tier": 4, "name": "Platinum", "goal": "100000", "upgrade_bonus": "400",
     "weekly_bonus": "50", "monthly_bonus": "150"},
    {"tier": 5, "name": "Diamond", "goal": "500000", "upgrade_bonus": "1500",
     "weekly_bonus": "150", "monthly_bonus": "500"},
]


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            if session.get(Setting, key) is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)


def seed_vip_levels(engine: Engine) -> None:
    """Insert the starter VIP ladder if no levels are configured."""
    with Session(engine) as session:
        count = session.scalar(select(func.count()).select_from(VipLevel))
        if count:
            return
        for row in DEFAULT_VIP_LEVELS:
            session.add(VipLevel(
                tier=row["tier"],
                name=row["name"],
                goal=Decimal(row["goal"]),
                upgrade_bonus=Decimal(row["upgrade_bonus"]),
                weekly_bonus=Decimal(row["weekly_bonus"]),
                monthly_bonus=Decimal(row["monthly_bonus"]),
            ))
        session.commit()
    logger.info("Seeded %d VIP levels.", len(DEFAULT_VIP_LEVELS))
