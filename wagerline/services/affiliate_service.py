"""
wagerline.services.affiliate_service — CPA Commission Cascade
==============================================================

Runs inside the deposit-confirmation transaction.  On a player's first
qualifying deposit it walks the ``invited_by`` chain up to
:data:`~wagerline.constants.CPA_MAX_LEVELS` hops and credits each eligible
referrer's ``affiliate_balance``.

"First deposit only" is enforced by checking for any existing CPA record
of the depositor while the depositor row is locked (the caller takes that
lock); the ``(user_id, type, level)`` unique constraint is the backstop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from wagerline.constants import CPA_MAX_LEVELS, to_money
from wagerline.database.models import (
    Account,
    AffiliateCommission,
    CommissionType,
    utcnow,
)
from wagerline.engine.affiliate import ReferrerTerms, cpa_amount
from wagerline.services import account_store

logger = logging.getLogger(__name__)


def _terms(account: Account) -> ReferrerTerms:
    return ReferrerTerms(
        cpa_available=bool(account.cpa_available),
        min_deposit_for_cpa=to_money(account.min_deposit_for_cpa or 0),
        level_amounts=(
            to_money(account.cpa_level_1 or 0),
            to_money(account.cpa_level_2 or 0),
            to_money(account.cpa_level_3 or 0),
        ),
    )


def has_cpa_record(session: Session, depositor_id: int) -> bool:
    return session.scalar(
        select(AffiliateCommission.id)
        .where(
            AffiliateCommission.user_id == depositor_id,
            AffiliateCommission.type == CommissionType.CPA.value,
        )
        .limit(1)
    ) is not None


def referral_chain(session: Session, depositor_id: int) -> list[Account]:
    """Referrers above *depositor_id*, nearest first, at most 3 deep.

    Iterative with a visited set, so a corrupted cycle in ``invited_by``
    ends the walk instead of looping.
    """
    chain: list[Account] = []
    visited = {depositor_id}
    current = session.get(Account, depositor_id)
    while current is not None and len(chain) < CPA_MAX_LEVELS:
        referrer_id = current.invited_by_id
        if referrer_id is None or referrer_id in visited:
            break
        visited.add(referrer_id)
        referrer = session.get(Account, referrer_id)
        if referrer is None:
            break
        chain.append(referrer)
        current = referrer
    return chain


def run_cascade(
    session: Session,
    depositor_id: int,
    deposit_amount: Decimal,
    *,
    deposit_id: int | None = None,
) -> list[AffiliateCommission]:
    """Credit CPA up the referral chain for a first qualifying deposit.

    Returns the commission rows written (empty when the depositor already
    triggered CPA, has no referrer, or no level qualified).
    """
    if has_cpa_record(session, depositor_id):
        logger.debug("CPA already paid for depositor %s — skipping", depositor_id)
        return []

    records: list[AffiliateCommission] = []
    for level, referrer in enumerate(referral_chain(session, depositor_id), start=1):
        amount = cpa_amount(_terms(referrer), level, deposit_amount)
        if amount <= 0:
            continue
        record = AffiliateCommission(
            user_id=depositor_id,
            affiliate_user_id=referrer.id,
            amount=amount,
            level=level,
            type=CommissionType.CPA.value,
            deposit_id=deposit_id,
            created_at=utcnow(),
        )
        session.add(record)
        account_store.increment(session, referrer.id, amount, column="affiliate_balance")
        records.append(record)
        logger.info(
            "CPA level %d: %s credited to account %s for depositor %s",
            level, amount, referrer.id, depositor_id,
        )

    if records:
        session.flush()
    return records


@dataclass
class AffiliateSummary:
    account_id: int
    affiliate_code: str
    affiliate_balance: Decimal
    referrals_by_level: dict[int, int]
    commission_total: Decimal
    commission_by_level: dict[int, Decimal]

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "affiliate_code": self.affiliate_code,
            "affiliate_balance": str(self.affiliate_balance),
            "referrals_by_level": {str(k): v for k, v in self.referrals_by_level.items()},
            "commission_total": str(self.commission_total),
            "commission_by_level": {
                str(k): str(v) for k, v in self.commission_by_level.items()
            },
        }


def _downline_ids(session: Session, account_id: int) -> dict[int, list[int]]:
    levels: dict[int, list[int]] = {}
    frontier = [account_id]
    seen = {account_id}
    for level in range(1, CPA_MAX_LEVELS + 1):
        if not frontier:
            levels[level] = []
            continue
        ids = [
            i for i in session.scalars(
                select(Account.id).where(Account.invited_by_id.in_(frontier))
            ).all()
            if i not in seen
        ]
        seen.update(ids)
        levels[level] = ids
        frontier = ids
    return levels


def affiliate_summary(
    session: Session,
    account_id: int,
    *,
    since: datetime | None = None,
    until: datetime | None = None,
) -> AffiliateSummary:
    """Referral counts per level and CPA earned, optionally windowed.

    Raises
    ------
    AccountNotFound
    """
    balances = account_store.read(session, account_id)
    account = session.get(Account, account_id)

    stmt = (
        select(AffiliateCommission.level, func.sum(AffiliateCommission.amount).label("total"))
        .where(AffiliateCommission.affiliate_user_id == account_id)
        .group_by(AffiliateCommission.level)
    )
    if since is not None:
        stmt = stmt.where(AffiliateCommission.created_at >= since)
    if until is not None:
        stmt = stmt.where(AffiliateCommission.created_at <= until)
    by_level = {level: Decimal("0.00") for level in range(1, CPA_MAX_LEVELS + 1)}
    for row in session.execute(stmt).all():
        by_level[row.level] = to_money(row.total)

    downline = _downline_ids(session, account_id)
    return AffiliateSummary(
        account_id=account_id,
        affiliate_code=account.affiliate_code,
        affiliate_balance=balances.affiliate_balance,
        referrals_by_level={level: len(ids) for level, ids in downline.items()},
        commission_total=sum(by_level.values(), Decimal("0")),
        commission_by_level=by_level,
    )
