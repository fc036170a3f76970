"""
wagerline.services.reporting_service — Account-facing Summaries
================================================================

Read-only views over the ledger for the account endpoints.  Nothing here
mutates state.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from wagerline.constants import DEFAULT_GAME_HISTORY_HOURS, GAME_HISTORY_HOURS, ZERO, to_money
from wagerline.database.models import LedgerEntry, SettlementAction, utcnow
from wagerline.services import account_store


def balances(session: Session, account_id: int) -> dict:
    return account_store.read(session, account_id).to_dict()


def normalize_hours(hours: int | None) -> int:
    """Clamp to one of the supported windows (3h, 12h, 24h, 48h, 7d)."""
    return hours if hours in GAME_HISTORY_HOURS else DEFAULT_GAME_HISTORY_HOURS


def game_history(
    session: Session,
    account_id: int,
    hours: int | None = None,
    *,
    now: datetime | None = None,
) -> dict:
    """Bets and wins over the last *hours*, in total and per game.

    ``volume`` counts both bets and wins; ``total_lost`` is what the
    account staked minus what it won back (never negative).
    """
    account_store.read(session, account_id)
    hours = normalize_hours(hours)
    now = now or utcnow()
    since = now - timedelta(hours=hours)

    is_bet = LedgerEntry.action == SettlementAction.BET.value
    is_win = LedgerEntry.action == SettlementAction.WIN.value
    bet_sum = func.coalesce(func.sum(case((is_bet, LedgerEntry.amount), else_=0)), 0)
    win_sum = func.coalesce(func.sum(case((is_win, LedgerEntry.amount), else_=0)), 0)
    bet_count = func.coalesce(func.sum(case((is_bet, 1), else_=0)), 0)

    rows = session.execute(
        select(
            LedgerEntry.game_reference,
            bet_count.label("bets"),
            bet_sum.label("bet_total"),
            win_sum.label("win_total"),
        )
        .where(
            LedgerEntry.account_id == account_id,
            LedgerEntry.action.in_([SettlementAction.BET.value, SettlementAction.WIN.value]),
            LedgerEntry.created_at >= since,
            LedgerEntry.created_at <= now,
        )
        .group_by(LedgerEntry.game_reference)
        .order_by(LedgerEntry.game_reference)
    ).all()

    games = []
    total_bets = 0
    total_bet = Decimal("0")
    total_win = Decimal("0")
    for row in rows:
        bet_total = to_money(row.bet_total)
        win_total = to_money(row.win_total)
        total_bets += int(row.bets)
        total_bet += bet_total
        total_win += win_total
        games.append({
            "game": row.game_reference,
            "bets": int(row.bets),
            "bet_total": str(bet_total),
            "win_total": str(win_total),
        })

    return {
        "account_id": account_id,
        "hours": hours,
        "total_bets": total_bets,
        "volume": str(total_bet + total_win),
        "total_lost": str(max(total_bet - total_win, ZERO)),
        "games": games,
    }
