"""
wagerline.services.account_store — Atomic Balance Mutation
===========================================================

The only code allowed to change ``balance``, ``affiliate_balance`` or
``vip_balance``.  Every mutation is a single SQL statement::

    UPDATE accounts SET balance = balance - :amount
     WHERE id = :id AND balance >= :amount

so the sufficiency check and the decrement cannot be separated by a
concurrent bet, whatever the isolation level.  Callers supply the session;
the store never commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from wagerline.constants import to_money
from wagerline.database.models import Account
from wagerline.engine.errors import AccountInactive, AccountNotFound, InsufficientFunds

logger = logging.getLogger(__name__)

BalanceColumn = Literal["balance", "affiliate_balance", "vip_balance"]
_COLUMNS: frozenset[str] = frozenset({"balance", "affiliate_balance", "vip_balance"})


@dataclass(frozen=True, slots=True)
class AccountBalances:
    account_id: int
    balance: Decimal
    affiliate_balance: Decimal
    vip_balance: Decimal

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "balance": str(self.balance),
            "affiliate_balance": str(self.affiliate_balance),
            "vip_balance": str(self.vip_balance),
        }


def _column(name: str):
    if name not in _COLUMNS:
        raise ValueError(f"Unknown balance column: {name!r}")
    return getattr(Account, name)


def _current(session: Session, account_id: int, column: str) -> Decimal | None:
    value = session.scalar(select(_column(column)).where(Account.id == account_id))
    return None if value is None else to_money(value)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def read(session: Session, account_id: int) -> AccountBalances:
    """Current balances for *account_id*.

    Raises
    ------
    AccountNotFound
    """
    row = session.execute(
        select(
            Account.balance, Account.affiliate_balance, Account.vip_balance
        ).where(Account.id == account_id)
    ).first()
    if row is None:
        raise AccountNotFound(f"account {account_id} not found")
    return AccountBalances(
        account_id=account_id,
        balance=to_money(row.balance),
        affiliate_balance=to_money(row.affiliate_balance),
        vip_balance=to_money(row.vip_balance),
    )


def load(session: Session, account_id: int, *, lock: bool = False) -> Account:
    """Load *account_id* regardless of status.

    With ``lock=True`` the row is selected ``FOR UPDATE`` so the rest of the
    unit of work is serialized against other writers of the same account.
    A locked load also refreshes any copy already in the identity map, so
    attributes read afterwards reflect the row as of the lock.
    """
    stmt = select(Account).where(Account.id == account_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    account = session.scalar(stmt)
    if account is None:
        raise AccountNotFound(f"account {account_id} not found")
    return account


def resolve_active(session: Session, account_id: int, *, lock: bool = False) -> Account:
    """Like :func:`load`, but refuses disabled or banned accounts."""
    account = load(session, account_id, lock=lock)
    if not account.is_active:
        raise AccountInactive(f"account {account_id} is not active")
    return account


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def increment(
    session: Session,
    account_id: int,
    amount: Decimal,
    *,
    column: BalanceColumn = "balance",
) -> Decimal:
    """Add *amount* (may be negative for a net rollback) and return the new value.

    Raises
    ------
    AccountNotFound
    """
    col = _column(column)
    result = session.execute(
        update(Account)
        .where(Account.id == account_id)
        .values({col: col + amount})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise AccountNotFound(f"account {account_id} not found")
    new_value = _current(session, account_id, column)
    logger.debug("account %s %s %+s → %s", account_id, column, amount, new_value)
    return new_value


def decrement(
    session: Session,
    account_id: int,
    amount: Decimal,
    *,
    column: BalanceColumn = "balance",
) -> Decimal:
    """Subtract *amount* only if the column holds at least that much.

    Raises
    ------
    ValueError
        If *amount* is negative.
    InsufficientFunds
        The conditional UPDATE matched no row and the account exists.
    AccountNotFound
    """
    if amount < 0:
        raise ValueError("decrement amount must not be negative")
    col = _column(column)
    result = session.execute(
        update(Account)
        .where(Account.id == account_id, col >= amount)
        .values({col: col - amount})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        current = _current(session, account_id, column)
        if current is None:
            raise AccountNotFound(f"account {account_id} not found")
        raise InsufficientFunds(
            f"{column} {current} is below {amount}",
            details={"available": str(current), "requested": str(amount)},
        )
    new_value = _current(session, account_id, column)
    logger.debug("account %s %s -%s → %s", account_id, column, amount, new_value)
    return new_value
