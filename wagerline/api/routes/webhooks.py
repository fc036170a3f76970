"""
wagerline.api.routes.webhooks — Inbound provider & gateway callbacks
=====================================================================

``POST /api/webhooks/{provider}`` is the settlement endpoint game providers
call for balance, bet, win, refund and rollback.  The body is passed through
untouched; validation happens in :func:`wagerline.engine.events.parse_callback`.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Body
from pydantic import BaseModel, Field

from wagerline.api.deps import ConfigDep, EngineDep, SettingsDep
from wagerline.services import deposit_service, settlement_service

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class DepositConfirmedBody(BaseModel):
    account_id: int
    amount: Decimal = Field(gt=0)
    reference: str = Field(min_length=1, max_length=128)


@router.post("/deposits/confirmed")
def deposit_confirmed(
    body: DepositConfirmedBody,
    engine: EngineDep,
    settings: SettingsDep,
):
    outcome = deposit_service.confirm_deposit(
        engine,
        settings,
        deposit_service.DepositConfirmed(
            account_id=body.account_id,
            amount=body.amount,
            reference=body.reference,
        ),
    )
    return outcome.to_dict()


@router.post("/{provider}")
def provider_callback(
    provider: str,
    engine: EngineDep,
    config: ConfigDep,
    body: dict[str, Any] = Body(...),
):
    result = settlement_service.process_callback(engine, config, provider, body)
    return result.to_response()
