"""
wagerline.services.wagering — Wagering Volume Queries
======================================================

Wagering volume is the sum of accepted ``bet`` entries on the ledger,
excluding bets a rollback has reversed.  Refunded bets still count.
Shared by the rollover tracker, the VIP engine and the rakeback job so all
three agree on what "volume" means.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from wagerline.constants import to_money
from wagerline.database.models import LedgerEntry, LedgerReversal, SettlementAction


def _not_reversed():
    return ~exists().where(LedgerReversal.reversed_entry_id == LedgerEntry.id)


def bet_volume_filter():
    """WHERE clauses selecting bets that count as wagering volume."""
    return (
        LedgerEntry.action == SettlementAction.BET.value,
        _not_reversed(),
    )


def bet_volume(
    session: Session,
    account_id: int,
    *,
    since: datetime | None = None,
    until: datetime | None = None,
) -> Decimal:
    """Total unreversed bet volume for *account_id*, optionally windowed."""
    stmt = select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
        LedgerEntry.account_id == account_id, *bet_volume_filter()
    )
    if since is not None:
        stmt = stmt.where(LedgerEntry.created_at >= since)
    if until is not None:
        stmt = stmt.where(LedgerEntry.created_at <= until)
    return to_money(session.scalar(stmt) or 0)


def bet_volume_by_account(
    session: Session,
    *,
    since: datetime,
    until: datetime,
) -> dict[int, Decimal]:
    """Unreversed bet volume per account inside ``[since, until]``."""
    rows = session.execute(
        select(LedgerEntry.account_id, func.sum(LedgerEntry.amount).label("volume"))
        .where(
            *bet_volume_filter(),
            LedgerEntry.created_at >= since,
            LedgerEntry.created_at <= until,
        )
        .group_by(LedgerEntry.account_id)
    ).all()
    return {row.account_id: to_money(row.volume) for row in rows}
