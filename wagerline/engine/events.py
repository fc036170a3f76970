"""
wagerline.engine.events — Settlement Event Variants
====================================================

Provider callbacks arrive as loosely-shaped JSON.  :func:`parse_callback`
validates the body at the boundary and returns exactly one of the frozen
event types below, each carrying only the fields its action needs.  Nothing
past this module touches the raw dictionary except to store it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from wagerline.constants import to_money
from wagerline.database.models import SettlementAction
from wagerline.engine.errors import ValidationFailed

__all__ = [
    "BalanceQuery",
    "Bet",
    "Refund",
    "Rollback",
    "RollbackItem",
    "SettlementEvent",
    "Win",
    "parse_callback",
    "requested_rollback_ids",
]

REVERSIBLE_ACTIONS = frozenset({SettlementAction.BET, SettlementAction.WIN})


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True, kw_only=True)
class SettlementEvent:
    """Fields shared by every provider action."""

    provider: str
    player_id: int
    transaction_id: str | None = None
    session_id: str | None = None
    game_uuid: str | None = None
    round_id: str | None = None
    currency: str = "BRL"
    raw: dict = field(default_factory=dict)

    action = SettlementAction.BALANCE

    @property
    def amount(self) -> Decimal:
        return Decimal("0")


@dataclass(frozen=True, slots=True, kw_only=True)
class BalanceQuery(SettlementEvent):
    action = SettlementAction.BALANCE


@dataclass(frozen=True, slots=True, kw_only=True)
class Bet(SettlementEvent):
    stake: Decimal
    action = SettlementAction.BET

    @property
    def amount(self) -> Decimal:
        return self.stake


@dataclass(frozen=True, slots=True, kw_only=True)
class Win(SettlementEvent):
    payout: Decimal
    action = SettlementAction.WIN

    @property
    def amount(self) -> Decimal:
        return self.payout


@dataclass(frozen=True, slots=True, kw_only=True)
class Refund(SettlementEvent):
    """Refund of a prior bet.

    ``claimed_amount`` is what the provider sent; the processor prefers the
    original bet's recorded stake when that bet is on the ledger.
    """

    claimed_amount: Decimal
    bet_transaction_id: str
    action = SettlementAction.REFUND

    @property
    def amount(self) -> Decimal:
        return self.claimed_amount


@dataclass(frozen=True, slots=True)
class RollbackItem:
    transaction_id: str
    action: SettlementAction


@dataclass(frozen=True, slots=True, kw_only=True)
class Rollback(SettlementEvent):
    """Reversal request.

    ``items`` are the well-formed bet and win references to reverse;
    ``requested_ids`` is every transaction id the provider listed, echoed
    back in the response whether or not it reversed anything.
    """

    items: tuple[RollbackItem, ...] = ()
    requested_ids: tuple[str, ...] = ()
    action = SettlementAction.ROLLBACK


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------
def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _required_str(body: dict, key: str, code: str) -> str:
    value = _optional_str(body.get(key))
    if value is None:
        raise ValidationFailed(f"{key} is required", code=code)
    return value


def _player_id(body: dict) -> int:
    value = body.get("player_id")
    if isinstance(value, bool):
        raise ValidationFailed("player_id must be an integer", code="invalid_player_id")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationFailed("player_id must be an integer", code="invalid_player_id")


def _positive_amount(body: dict) -> Decimal:
    try:
        amount = to_money(body.get("amount"))
    except ValueError:
        raise ValidationFailed("amount must be a number", code="invalid_amount") from None
    if amount <= 0:
        raise ValidationFailed("amount must be greater than zero", code="invalid_amount")
    return amount


def _rollback_items(body: dict) -> tuple[RollbackItem, ...]:
    raw_items = body.get("rollback_transactions")
    if not isinstance(raw_items, list):
        return ()
    items: list[RollbackItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        txid = _optional_str(raw.get("transaction_id"))
        action = _optional_str(raw.get("action"))
        if txid is None or action is None:
            continue
        try:
            parsed = SettlementAction(action.lower())
        except ValueError:
            continue
        if parsed in REVERSIBLE_ACTIONS:
            items.append(RollbackItem(transaction_id=txid, action=parsed))
    return tuple(items)


def requested_rollback_ids(body: dict) -> tuple[str, ...]:
    """Transaction ids listed in a rollback body, in request order."""
    raw_items = body.get("rollback_transactions") if isinstance(body, dict) else None
    if not isinstance(raw_items, list):
        return ()
    ids = (
        _optional_str(raw.get("transaction_id")) for raw in raw_items if isinstance(raw, dict)
    )
    return tuple(txid for txid in ids if txid is not None)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def parse_callback(
    provider: str,
    body: dict,
    default_currency: str = "BRL",
) -> SettlementEvent:
    """Validate a provider callback body and return its typed variant.

    Raises
    ------
    ValidationFailed
        ``invalid_action``, ``unsupported_action``, ``invalid_player_id``,
        ``invalid_amount``, ``invalid_transaction_id`` or
        ``invalid_bet_transaction_id``.
    """
    if not isinstance(body, dict):
        raise ValidationFailed("callback body must be an object", code="invalid_payload")

    raw_action = body.get("action")
    if not isinstance(raw_action, str) or not raw_action.strip():
        raise ValidationFailed("action is required", code="invalid_action")
    try:
        action = SettlementAction(raw_action.strip().lower())
    except ValueError:
        raise ValidationFailed(
            f"unsupported action {raw_action!r}", code="unsupported_action"
        ) from None

    common = {
        "provider": provider,
        "player_id": _player_id(body),
        "session_id": _optional_str(body.get("session_id")),
        "game_uuid": _optional_str(body.get("game_uuid")),
        "round_id": _optional_str(body.get("round_id")),
        "currency": _optional_str(body.get("currency")) or default_currency,
        "raw": dict(body),
    }

    if action is SettlementAction.BALANCE:
        return BalanceQuery(**common)

    if action is SettlementAction.ROLLBACK:
        return Rollback(
            transaction_id=_required_str(body, "transaction_id", "invalid_transaction_id"),
            items=_rollback_items(body),
            requested_ids=requested_rollback_ids(body),
            **common,
        )

    amount = _positive_amount(body)
    txid = _required_str(body, "transaction_id", "invalid_transaction_id")

    if action is SettlementAction.BET:
        return Bet(transaction_id=txid, stake=amount, **common)
    if action is SettlementAction.WIN:
        return Win(transaction_id=txid, payout=amount, **common)
    return Refund(
        transaction_id=txid,
        claimed_amount=amount,
        bet_transaction_id=_required_str(
            body, "bet_transaction_id", "invalid_bet_transaction_id"
        ),
        **common,
    )
