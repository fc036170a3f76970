"""
tests/test_api_routes.py — FastAPI Route Integration Tests
===========================================================
Drives the HTTP surface through the FastAPI TestClient with the engine,
config and provider client swapped for test doubles.

These tests verify:
- Provider webhook settlement and replay over HTTP
- LedgerError → JSON error body and status mapping
- Account endpoints delegate to their services
- Health endpoint availability
"""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest
from conftest import make_account, make_config, make_vip_ladder
from fastapi.testclient import TestClient

from wagerline.api import deps
from wagerline.services.provider_client import PokerGamesClient


def _launch_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/auth/authentication"):
        return httpx.Response(200, json={"access_token": "tok"})
    return httpx.Response(200, json={"game_url": "https://play.test/g", "session_id": "s"})


@pytest.fixture
def client(db_engine):
    """TestClient wired to the in-memory engine and a mocked provider."""
    from wagerline.api.main import app

    config = make_config()
    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_config] = lambda: config
    app.dependency_overrides[deps.get_provider_client] = lambda: PokerGamesClient(
        config.provider, transport=httpx.MockTransport(_launch_handler)
    )
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def _bet(player: int, txid: str = "b-1", amount: str = "10") -> dict:
    return {"action": "bet", "player_id": player, "amount": amount, "transaction_id": txid}


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Provider webhook
# ===========================================================================
class TestProviderWebhook:
    def test_bet_and_replay(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("100"))
        first = client.post("/api/webhooks/poker-games", json=_bet(player))
        second = client.post("/api/webhooks/poker-games", json=_bet(player))

        assert first.status_code == 200
        assert first.json()["balance"] == "90.00"
        assert first.json()["transaction_id"].startswith("PG-BET-")
        assert second.json() == first.json()

    def test_balance_query(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("7.5"))
        resp = client.post("/api/webhooks/poker-games", json={
            "action": "balance", "player_id": player,
        })
        assert resp.json() == {"balance": "7.50"}

    def test_validation_error_body(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("100"))
        resp = client.post("/api/webhooks/poker-games", json=_bet(player, amount="-1"))
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_amount"

    def test_out_of_range_amount_is_a_validation_error(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("100"))
        resp = client.post("/api/webhooks/poker-games", json=_bet(player, amount="1e30"))
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_amount"

    def test_insufficient_funds(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("5"))
        resp = client.post("/api/webhooks/poker-games", json=_bet(player, amount="6"))
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "insufficient_funds"
        assert body["available"] == "5.00"

    def test_unknown_player(self, client):
        resp = client.post("/api/webhooks/poker-games", json=_bet(999))
        assert resp.status_code == 404
        assert resp.json()["error"] == "account_not_found"

    def test_inactive_player(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("100"), status=False)
        resp = client.post("/api/webhooks/poker-games", json=_bet(player))
        assert resp.status_code == 403

    def test_non_object_body(self, client):
        resp = client.post("/api/webhooks/poker-games", json=["bet"])
        assert resp.status_code == 422


class TestDepositWebhook:
    def test_confirmed_deposit(self, client, db_engine):
        player = make_account(db_engine)
        payload = {"account_id": player, "amount": "100", "reference": "gw-1"}
        resp = client.post("/api/webhooks/deposits/confirmed", json=payload)
        assert resp.status_code == 200
        body = resp.json()
        assert body["processed"] is True
        assert body["balance"] == "100.00"
        assert len(body["rollover_requirement_ids"]) == 1

        again = client.post("/api/webhooks/deposits/confirmed", json=payload).json()
        assert again["already_paid"] is True

    def test_rejects_non_positive_amount(self, client, db_engine):
        player = make_account(db_engine)
        resp = client.post("/api/webhooks/deposits/confirmed", json={
            "account_id": player, "amount": "0", "reference": "gw-1",
        })
        assert resp.status_code == 422


# ===========================================================================
# Accounts
# ===========================================================================
class TestAccountEndpoints:
    def test_open_account_with_inviter(self, client, db_engine):
        inviter = client.post("/api/accounts", json={}).json()
        resp = client.post("/api/accounts", json={"inviter_code": inviter["affiliate_code"]})
        assert resp.status_code == 201
        assert resp.json()["invited_by_id"] == inviter["id"]

    def test_unknown_inviter(self, client):
        resp = client.post("/api/accounts", json={"inviter_code": "ZZZZZZZZ"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "inviter_not_found"

    def test_balances(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("3"), vip_balance=Decimal("1"))
        resp = client.get(f"/api/accounts/{player}/balances")
        assert resp.json() == {
            "account_id": player,
            "balance": "3.00",
            "affiliate_balance": "0.00",
            "vip_balance": "1.00",
        }

    def test_withdrawal_blocked_by_rollover(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("500"))
        client.post("/api/webhooks/deposits/confirmed", json={
            "account_id": player, "amount": "100", "reference": "gw-1",
        })
        resp = client.post(f"/api/accounts/{player}/withdrawals", json={"amount": "50"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "rollover_not_completed"

        rollover = client.get(f"/api/accounts/{player}/rollover").json()
        assert rollover["required"] == "200.00"

    def test_withdrawal_created(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("100"))
        resp = client.post(f"/api/accounts/{player}/withdrawals", json={"amount": "40"})
        assert resp.status_code == 201
        assert resp.json()["status"] == "PENDING"

    def test_vip_progress_and_redeem(self, client, db_engine):
        make_vip_ladder(db_engine, [(1, "100", "5")])
        player = make_account(db_engine, balance=Decimal("500"))
        client.post("/api/webhooks/poker-games", json=_bet(player, amount="100"))

        assert client.get(f"/api/accounts/{player}/vip").json()["vip"] == 1
        bonuses = client.get(f"/api/accounts/{player}/vip/bonuses").json()
        assert bonuses["upgrade"]["available"] == "5.00"

        resp = client.post(
            f"/api/accounts/{player}/vip/redeem", json={"bonus_type": "upgrade", "amount": "5"}
        )
        assert resp.status_code == 200
        assert resp.json()["balance"] == "405.00"

    def test_game_history_default_window(self, client, db_engine):
        player = make_account(db_engine, balance=Decimal("100"))
        client.post("/api/webhooks/poker-games", json=_bet(player))
        body = client.get(f"/api/accounts/{player}/game-history", params={"hours": 5}).json()
        assert body["hours"] == 3
        assert body["total_bets"] == 1

    def test_affiliate_summary(self, client, db_engine):
        player = make_account(db_engine)
        body = client.get(f"/api/accounts/{player}/affiliate").json()
        assert body["referrals_by_level"] == {"1": 0, "2": 0, "3": 0}

    def test_redeem_code_not_found(self, client, db_engine):
        player = make_account(db_engine)
        resp = client.post(f"/api/accounts/{player}/redeem-code", json={"code": "NOPE"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "redeem_code_not_found"

    def test_game_launch(self, client, db_engine):
        player = make_account(db_engine)
        resp = client.post(f"/api/accounts/{player}/games/holdem/launch", json={"lang": "en"})
        assert resp.status_code == 200
        assert resp.json()["game_url"] == "https://play.test/g"

    def test_unknown_account(self, client):
        resp = client.get("/api/accounts/424242/balances")
        assert resp.status_code == 404
