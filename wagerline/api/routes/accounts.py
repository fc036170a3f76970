"""
wagerline.api.routes.accounts — Account-facing endpoints
=========================================================

Read-only summaries plus the player-initiated mutations (withdrawal
request, VIP bonus redemption, redeem code, game launch).  Handlers are
thin: each one delegates to a service and returns its dict.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from wagerline.api.deps import (
    ConfigDep,
    EngineDep,
    ProviderDep,
    SessionDep,
    SettingsDep,
)
from wagerline.database.models import VipHistoryKind
from wagerline.services import (
    account_service,
    affiliate_service,
    provider_client,
    redeem_service,
    reporting_service,
    rollover_service,
    vip_service,
    withdrawal_service,
)

router = APIRouter(prefix="/accounts", tags=["accounts"])


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class OpenAccountBody(BaseModel):
    inviter_code: str | None = Field(default=None, max_length=32)


class WithdrawalBody(BaseModel):
    amount: Decimal = Field(gt=0)


class VipRedeemBody(BaseModel):
    bonus_type: VipHistoryKind
    amount: Decimal = Field(gt=0)


class RedeemCodeBody(BaseModel):
    code: str = Field(min_length=1, max_length=64)


class LaunchBody(BaseModel):
    lang: str = Field(default="pt", max_length=8)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def open_account(body: OpenAccountBody, engine: EngineDep, settings: SettingsDep):
    account = account_service.open_account(engine, settings, inviter_code=body.inviter_code)
    return {
        "id": account.id,
        "affiliate_code": account.affiliate_code,
        "invited_by_id": account.invited_by_id,
    }


@router.get("/{account_id}/balances")
def balances(account_id: int, session: SessionDep):
    return reporting_service.balances(session, account_id)


@router.get("/{account_id}/game-history")
def game_history(
    account_id: int,
    session: SessionDep,
    hours: int = Query(default=3),
):
    return reporting_service.game_history(session, account_id, hours)


@router.get("/{account_id}/rollover")
def rollover(account_id: int, session: SessionDep):
    return rollover_service.rollover_summary(session, account_id).to_dict()


@router.get("/{account_id}/affiliate")
def affiliate(
    account_id: int,
    session: SessionDep,
    since: datetime | None = None,
    until: datetime | None = None,
):
    return affiliate_service.affiliate_summary(
        session, account_id, since=since, until=until
    ).to_dict()


# ---------------------------------------------------------------------------
# VIP
# ---------------------------------------------------------------------------
@router.get("/{account_id}/vip")
def vip_progress(account_id: int, session: SessionDep):
    return vip_service.vip_progress(session, account_id)


@router.get("/{account_id}/vip/bonuses")
def vip_bonuses(account_id: int, session: SessionDep):
    return vip_service.vip_bonus_summary(session, account_id)


@router.post("/{account_id}/vip/redeem")
def vip_redeem(account_id: int, body: VipRedeemBody, engine: EngineDep):
    return vip_service.redeem_vip_bonus(
        engine, account_id, body.bonus_type, body.amount
    ).to_dict()


# ---------------------------------------------------------------------------
# Money movement
# ---------------------------------------------------------------------------
@router.post("/{account_id}/withdrawals", status_code=201)
def request_withdrawal(
    account_id: int,
    body: WithdrawalBody,
    engine: EngineDep,
    settings: SettingsDep,
):
    return withdrawal_service.request_withdrawal(engine, settings, account_id, body.amount)


@router.post("/{account_id}/redeem-code")
def redeem_code(account_id: int, body: RedeemCodeBody, engine: EngineDep):
    return redeem_service.redeem_code(engine, account_id, body.code).to_dict()


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------
@router.post("/{account_id}/games/{game_id}/launch")
async def launch_game(
    account_id: int,
    game_id: str,
    engine: EngineDep,
    config: ConfigDep,
    client: ProviderDep,
    body: LaunchBody | None = None,
):
    lang = body.lang if body else "pt"
    return await provider_client.launch_for_account(
        engine, config, client, account_id, game_id, lang=lang
    )
