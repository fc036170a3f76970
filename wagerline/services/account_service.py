"""
wagerline.services.account_service — Account Lifecycle
=======================================================

Opening accounts (with referral linking and jump limiting) and
deactivation.  Accounts are never deleted.
"""

from __future__ import annotations

import logging
import secrets
import string

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from wagerline.constants import AFFILIATE_CODE_ATTEMPTS, AFFILIATE_CODE_LENGTH
from wagerline.database.engine import get_session
from wagerline.database.models import Account
from wagerline.engine.errors import AccountNotFound, LedgerConflict, NotFound
from wagerline.engine.snapshot import PlatformSettings

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _new_affiliate_code(session: Session) -> str:
    for _ in range(AFFILIATE_CODE_ATTEMPTS):
        code = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(AFFILIATE_CODE_LENGTH))
        taken = session.scalar(select(Account.id).where(Account.affiliate_code == code))
        if taken is None:
            return code
    raise LedgerConflict("could not allocate a unique affiliate code", code="affiliate_code_exhausted")


def _resolve_inviter(session: Session, inviter: Account) -> int | None:
    """Apply the inviter's jump limit and return the id to link, if any.

    With jumping enabled and a positive limit, the inviter is linked to
    ``jump_limit`` consecutive registrations; the next one is left
    unlinked and the counter starts over.
    """
    if not inviter.jump_available or inviter.jump_limit <= 0:
        return inviter.id
    if inviter.jump_invite_count >= inviter.jump_limit:
        inviter.jump_invite_count = 0
        logger.info("Inviter %s reached jump limit — registration not linked", inviter.id)
        return None
    inviter.jump_invite_count += 1
    return inviter.id


def open_account(
    engine: Engine,
    settings: PlatformSettings,
    *,
    inviter_code: str | None = None,
) -> Account:
    """Create a player account with the platform's default CPA terms.

    Raises
    ------
    NotFound
        ``inviter_not_found`` when *inviter_code* matches no account.
    """
    with get_session(engine) as session:
        invited_by_id = None
        if inviter_code:
            inviter = session.scalar(
                select(Account)
                .where(Account.affiliate_code == inviter_code.strip().upper())
                .with_for_update()
            )
            if inviter is None:
                raise NotFound(f"no account with code {inviter_code!r}", code="inviter_not_found")
            invited_by_id = _resolve_inviter(session, inviter)

        account = Account(
            affiliate_code=_new_affiliate_code(session),
            invited_by_id=invited_by_id,
            cpa_available=settings.default_cpa_available,
            min_deposit_for_cpa=settings.default_min_deposit_for_cpa,
            cpa_level_1=settings.default_cpa_level_1,
            cpa_level_2=settings.default_cpa_level_2,
            cpa_level_3=settings.default_cpa_level_3,
        )
        session.add(account)
        session.flush()
        session.expunge(account)

    logger.info("Opened account %s (invited_by=%s)", account.id, account.invited_by_id)
    return account


def deactivate(engine: Engine, account_id: int) -> None:
    with get_session(engine) as session:
        account = session.get(Account, account_id)
        if account is None:
            raise AccountNotFound(f"account {account_id} not found")
        account.status = False
    logger.info("Deactivated account %s", account_id)
