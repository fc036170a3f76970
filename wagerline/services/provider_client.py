"""
wagerline.services.provider_client — Game Provider Launch Client
=================================================================

Outbound calls to the game provider: obtain an agent access token, then
request a launch URL for a player.  Every request has a bounded timeout
and one transport-level retry.

Failure mapping:

* timeout / connection error → :class:`ProviderUnavailable` (retryable)
* non-2xx, or a body without the expected fields → :class:`ProviderRejected`
"""

from __future__ import annotations

import base64
import logging

import httpx
from sqlalchemy import Engine

from wagerline.config import LedgerConfig, ProviderConfig
from wagerline.database.engine import get_session, run_db
from wagerline.engine.errors import ProviderRejected, ProviderUnavailable
from wagerline.services import account_store

logger = logging.getLogger(__name__)


class PokerGamesClient:
    """Async client for the provider's agent API."""

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=transport,
        )

    def _basic_token(self) -> str:
        raw = f"{self.config.agent_token}:{self.config.agent_secret}".encode()
        return base64.b64encode(raw).decode()

    async def _send(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> dict:
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Provider %s %s timed out", method, url)
            raise ProviderUnavailable(
                "provider request timed out", code="provider_timeout"
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("Provider %s %s unreachable: %s", method, url, exc)
            raise ProviderUnavailable(
                "provider unreachable", code="provider_unreachable"
            ) from exc

        if resp.status_code >= 400:
            logger.warning("Provider %s %s returned HTTP %d", method, url, resp.status_code)
            raise ProviderRejected(
                f"provider returned HTTP {resp.status_code}",
                code="provider_http_error",
                details={"status": resp.status_code},
            )
        try:
            body = resp.json()
        except ValueError as exc:
            raise ProviderRejected("provider returned invalid JSON", code="provider_bad_body") from exc
        if not isinstance(body, dict):
            raise ProviderRejected("provider returned invalid JSON", code="provider_bad_body")
        return body

    async def _authenticate(self, client: httpx.AsyncClient) -> str:
        body = await self._send(
            client, "POST", "/auth/authentication",
            headers={"Authorization": f"Bearer {self._basic_token()}"},
        )
        token = body.get("access_token")
        if not token:
            raise ProviderRejected("no access token returned", code="provider_auth_failed")
        return token

    async def authenticate(self) -> str:
        """Exchange the agent credentials for a short-lived access token."""
        async with self._client() as client:
            return await self._authenticate(client)

    async def launch_game(
        self,
        account_id: int,
        game_id: str,
        *,
        currency: str = "BRL",
        lang: str = "pt",
    ) -> dict:
        """Request a launch URL for *game_id* on behalf of *account_id*."""
        async with self._client() as client:
            token = await self._authenticate(client)
            body = await self._send(
                client, "GET", "/games/game_launch",
                headers={"Authorization": f"Bearer {token}"},
                params={
                    "agent_code": self.config.agent_code,
                    "game_id": game_id,
                    "type": "CHARGED",
                    "currency": currency,
                    "lang": lang,
                    "user_id": str(account_id),
                },
            )
        url = body.get("game_url") or body.get("url")
        if not url:
            raise ProviderRejected("no launch url returned", code="provider_launch_failed")
        logger.info("Launched game %s for account %s", game_id, account_id)
        return {
            "provider": self.config.slug,
            "game_id": game_id,
            "game_url": url,
            "session_id": body.get("session_id") or body.get("token"),
        }


def _ensure_active(engine: Engine, account_id: int) -> None:
    with get_session(engine) as session:
        account_store.resolve_active(session, account_id)


async def launch_for_account(
    engine: Engine,
    config: LedgerConfig,
    client: PokerGamesClient,
    account_id: int,
    game_id: str,
    *,
    lang: str = "pt",
) -> dict:
    """Check the account may play, then ask the provider for a launch URL."""
    await run_db(_ensure_active, engine, account_id)
    return await client.launch_game(
        account_id, game_id, currency=config.default_currency, lang=lang
    )
