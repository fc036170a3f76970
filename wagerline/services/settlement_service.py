"""
wagerline.services.settlement_service — Idempotent Settlement Processor
========================================================================

Entry point for provider callbacks.  Replaying an identical callback any
number of times returns the identical response and moves money at most
once.

One callback, one transaction:

1. Look up ``(provider, action, provider_transaction_id)``.  A completed
   entry is returned as-is (replay).  An entry without an internal id is
   a conflict and is never treated as completed.
2. Resolve the account (missing → ``AccountNotFound``, disabled or banned
   → ``AccountInactive``).
3. Apply the action through the Account Store.
4. Insert the ledger entry, flush for its id, stamp the internal id.
5. For bets: refresh rollover progress and re-evaluate the VIP tier.
6. Commit.

Two concurrent deliveries of the same event both pass step 1; the loser
fails on the unique key at flush time, rolls back everything, and is run
again once, which lands on the replay path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wagerline.config import LedgerConfig
from wagerline.constants import to_money
from wagerline.database.engine import get_session
from wagerline.database.models import (
    LedgerEntry,
    LedgerReversal,
    SettlementAction,
    utcnow,
)
from wagerline.engine.errors import LedgerConflict, LedgerError
from wagerline.engine.events import (
    BalanceQuery,
    Bet,
    Refund,
    Rollback,
    SettlementEvent,
    Win,
    parse_callback,
    requested_rollback_ids,
)
from wagerline.services import account_store, rollover_service, vip_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SettlementResult:
    action: SettlementAction
    balance: Decimal
    transaction_id: str | None = None
    rollback_transactions: tuple[str, ...] = ()
    replayed: bool = False

    def to_response(self) -> dict:
        """Body returned to the provider."""
        if self.action is SettlementAction.BALANCE:
            return {"balance": str(self.balance)}
        body: dict = {"balance": str(self.balance), "transaction_id": self.transaction_id}
        if self.action is SettlementAction.ROLLBACK:
            body["rollback_transactions"] = list(self.rollback_transactions)
        return body


@dataclass
class _Effect:
    """What applying an action did, before the entry is persisted."""

    amount: Decimal
    balance_after: Decimal
    reference_transaction_id: str | None = None
    reversed_entries: list[LedgerEntry] = field(default_factory=list)


def internal_transaction_id(prefix: str, action: SettlementAction, entry_id: int) -> str:
    return f"{prefix}-{action.value.upper()}-{entry_id}"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def find_entry(
    session: Session,
    provider: str,
    action: SettlementAction | str,
    provider_transaction_id: str,
) -> LedgerEntry | None:
    return session.scalar(
        select(LedgerEntry).where(
            LedgerEntry.provider == provider,
            LedgerEntry.action == str(action),
            LedgerEntry.provider_transaction_id == provider_transaction_id,
        )
    )


def _replay(existing: LedgerEntry) -> SettlementResult:
    if not existing.internal_transaction_id:
        logger.error(
            "Ledger entry %s (%s/%s %s) has no internal id — refusing to replay",
            existing.id, existing.provider, existing.action,
            existing.provider_transaction_id,
        )
        raise LedgerConflict(
            "ledger entry exists without an internal transaction id",
            code="incomplete_ledger_entry",
        )
    action = SettlementAction(existing.action)
    rollback_ids = (
        requested_rollback_ids(existing.raw_payload or {})
        if action is SettlementAction.ROLLBACK
        else ()
    )
    return SettlementResult(
        action=action,
        balance=to_money(existing.balance_after),
        transaction_id=existing.internal_transaction_id,
        rollback_transactions=rollback_ids,
        replayed=True,
    )


# ---------------------------------------------------------------------------
# Action handlers
# ---------------------------------------------------------------------------
def _apply_balance(session: Session, event: BalanceQuery) -> _Effect:
    current = account_store.read(session, event.player_id).balance
    return _Effect(amount=Decimal("0"), balance_after=current)


def _apply_bet(session: Session, event: Bet) -> _Effect:
    after = account_store.decrement(session, event.player_id, event.stake)
    return _Effect(amount=event.stake, balance_after=after)


def _apply_win(session: Session, event: Win) -> _Effect:
    after = account_store.increment(session, event.player_id, event.payout)
    return _Effect(amount=event.payout, balance_after=after)


def _apply_refund(session: Session, event: Refund) -> _Effect:
    original = find_entry(session, event.provider, SettlementAction.BET, event.bet_transaction_id)
    if original is not None and original.account_id == event.player_id:
        amount = to_money(original.amount)
    else:
        if original is None:
            logger.info(
                "Refund %s references unknown bet %s — using callback amount",
                event.transaction_id, event.bet_transaction_id,
            )
        amount = event.claimed_amount
    after = account_store.increment(session, event.player_id, amount)
    return _Effect(
        amount=amount,
        balance_after=after,
        reference_transaction_id=event.bet_transaction_id,
    )


def _apply_rollback(session: Session, event: Rollback) -> _Effect:
    """Net delta = Σ referenced bets − Σ referenced wins.

    Unknown references, entries of another account, and entries some
    earlier rollback already reversed are skipped.
    """
    delta = Decimal("0")
    reversed_entries: list[LedgerEntry] = []
    seen: set[int] = set()
    for item in event.items:
        entry = find_entry(session, event.provider, item.action, item.transaction_id)
        if entry is None or entry.id in seen or entry.account_id != event.player_id:
            continue
        already = session.scalar(
            select(LedgerReversal.id).where(LedgerReversal.reversed_entry_id == entry.id)
        )
        if already is not None:
            logger.info(
                "Rollback %s skips %s %s — already reversed",
                event.transaction_id, item.action, item.transaction_id,
            )
            continue
        seen.add(entry.id)
        amount = to_money(entry.amount)
        delta += amount if item.action is SettlementAction.BET else -amount
        reversed_entries.append(entry)

    if delta == 0:
        after = account_store.read(session, event.player_id).balance
    else:
        after = account_store.increment(session, event.player_id, delta)
    return _Effect(amount=delta, balance_after=after, reversed_entries=reversed_entries)


_HANDLERS = {
    SettlementAction.BALANCE: _apply_balance,
    SettlementAction.BET: _apply_bet,
    SettlementAction.WIN: _apply_win,
    SettlementAction.REFUND: _apply_refund,
    SettlementAction.ROLLBACK: _apply_rollback,
}


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------
def _settle(session: Session, config: LedgerConfig, event: SettlementEvent) -> SettlementResult:
    # Balance queries carry no idempotency key: each one is a fresh read.
    dedupe_key = None if event.action is SettlementAction.BALANCE else event.transaction_id
    if dedupe_key is not None:
        existing = find_entry(session, event.provider, event.action, dedupe_key)
        if existing is not None:
            return _replay(existing)

    account_store.resolve_active(session, event.player_id)
    effect = _HANDLERS[event.action](session, event)

    entry = LedgerEntry(
        provider=event.provider,
        action=event.action.value,
        provider_transaction_id=dedupe_key,
        account_id=event.player_id,
        amount=effect.amount,
        balance_after=effect.balance_after,
        currency=event.currency,
        session_id=event.session_id,
        game_reference=event.game_uuid,
        round_id=event.round_id,
        reference_transaction_id=effect.reference_transaction_id,
        raw_payload=event.raw,
        created_at=utcnow(),
    )
    session.add(entry)
    session.flush()
    entry.internal_transaction_id = internal_transaction_id(
        config.prefix_for(event.provider), event.action, entry.id
    )
    for reversed_entry in effect.reversed_entries:
        session.add(LedgerReversal(
            rollback_entry_id=entry.id,
            reversed_entry_id=reversed_entry.id,
            created_at=entry.created_at,
        ))
    session.flush()

    if event.action is SettlementAction.BET:
        rollover_service.record_wagering(session, event.player_id)
        vip_service.reevaluate(session, event.player_id)

    return SettlementResult(
        action=event.action,
        balance=effect.balance_after,
        transaction_id=entry.internal_transaction_id,
        rollback_transactions=event.requested_ids if isinstance(event, Rollback) else (),
    )


def _settle_once(engine: Engine, config: LedgerConfig, event: SettlementEvent) -> SettlementResult:
    with get_session(engine) as session:
        result = _settle(session, config, event)
    if not result.replayed:
        logger.info(
            "Settled %s/%s %s for account %s → %s (balance %s)",
            event.provider, event.action, event.transaction_id,
            event.player_id, result.transaction_id, result.balance,
        )
    return result


def settle_event(engine: Engine, config: LedgerConfig, event: SettlementEvent) -> SettlementResult:
    """Apply an already-validated event exactly once."""
    try:
        return _settle_once(engine, config, event)
    except IntegrityError:
        logger.info(
            "Concurrent duplicate for %s/%s %s — retrying as replay",
            event.provider, event.action, event.transaction_id,
        )
        return _settle_once(engine, config, event)


def process_callback(
    engine: Engine,
    config: LedgerConfig,
    provider: str,
    body: dict,
) -> SettlementResult:
    """Validate a raw provider callback body and settle it.

    Raises
    ------
    ValidationFailed
        Malformed body; nothing is persisted.
    AccountNotFound, AccountInactive, InsufficientFunds
        Rejected event; nothing is persisted.
    LedgerConflict
        A stored entry for this key is incomplete.
    """
    try:
        event = parse_callback(provider, body, config.default_currency)
        return settle_event(engine, config, event)
    except LedgerError as exc:
        logger.warning(
            "Rejected %s callback (action=%r tx=%r): %s",
            provider, body.get("action") if isinstance(body, dict) else None,
            body.get("transaction_id") if isinstance(body, dict) else None, exc.code,
        )
        raise
