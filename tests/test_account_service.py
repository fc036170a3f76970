"""
tests/test_account_service.py — Account Opening & Referral Jump Limit
======================================================================
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import make_account
from sqlalchemy.orm import Session

from wagerline.database.models import Account
from wagerline.engine.errors import AccountInactive, NotFound
from wagerline.services import account_service, account_store


@pytest.fixture
def engine(db_engine):
    return db_engine


def _code_of(engine, account_id) -> str:
    with Session(engine) as session:
        return session.get(Account, account_id).affiliate_code


class TestOpenAccount:
    def test_defaults_from_settings(self, engine, settings):
        account = account_service.open_account(engine, settings)
        assert account.id is not None
        assert len(account.affiliate_code) == 8
        assert account.invited_by_id is None
        with Session(engine) as session:
            stored = session.get(Account, account.id)
            assert stored.cpa_level_1 == Decimal("10")
            assert stored.min_deposit_for_cpa == Decimal("30")
            assert stored.balance == Decimal("0")

    def test_codes_are_unique(self, engine, settings):
        codes = {account_service.open_account(engine, settings).affiliate_code for _ in range(5)}
        assert len(codes) == 5

    def test_links_inviter_case_insensitively(self, engine, settings):
        inviter = make_account(engine)
        account = account_service.open_account(
            engine, settings, inviter_code=_code_of(engine, inviter).lower()
        )
        assert account.invited_by_id == inviter

    def test_unknown_inviter(self, engine, settings):
        with pytest.raises(NotFound) as exc_info:
            account_service.open_account(engine, settings, inviter_code="NOPE0000")
        assert exc_info.value.code == "inviter_not_found"


class TestJumpLimit:
    def test_every_nth_registration_is_unlinked(self, engine, settings):
        inviter = make_account(engine, jump_available=True, jump_limit=2)
        code = _code_of(engine, inviter)
        linked = [
            account_service.open_account(engine, settings, inviter_code=code).invited_by_id
            for _ in range(6)
        ]
        assert linked == [inviter, inviter, None, inviter, inviter, None]

    def test_disabled_jump_always_links(self, engine, settings):
        inviter = make_account(engine, jump_available=False, jump_limit=1)
        code = _code_of(engine, inviter)
        linked = [
            account_service.open_account(engine, settings, inviter_code=code).invited_by_id
            for _ in range(3)
        ]
        assert linked == [inviter] * 3


class TestDeactivate:
    def test_deactivated_account_is_refused(self, engine):
        account_id = make_account(engine)
        account_service.deactivate(engine, account_id)
        with Session(engine) as session:
            with pytest.raises(AccountInactive):
                account_store.resolve_active(session, account_id)
