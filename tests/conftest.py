"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from wagerline.config import LedgerConfig, config_from_dict
from wagerline.database.models import Account, Base, VipLevel
from wagerline.engine.snapshot import PlatformSettings

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


TEST_CONFIG = {
    "platform_name": "Wagerline Test",
    "default_currency": "BRL",
    "api_port": 8000,
    "scheduler_enabled": False,
    "provider_prefixes": {"poker-games": "PG"},
    "provider": {
        "slug": "poker-games",
        "base_url": "https://provider.test/api/v1/",
        "agent_code": "agent-1",
        "agent_token": "token-1",
        "agent_secret": "secret-1",
        "timeout_seconds": 2,
    },
}


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Wagerline tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def ledger_config() -> LedgerConfig:
    return make_config()


@pytest.fixture
def settings() -> PlatformSettings:
    """Platform defaults (rollover ×2 on, CPA 10/5/2 from 30.00)."""
    return PlatformSettings()


def make_config(**overrides) -> LedgerConfig:
    """Build a :class:`LedgerConfig`.  Usable as both a fixture and a factory function."""
    raw = {**TEST_CONFIG, **overrides}
    return config_from_dict(raw)


def make_account(engine: Engine, **fields) -> int:
    """Insert an account and return its id.  ``balance`` defaults to 0."""
    with Session(engine) as session:
        account = Account(
            affiliate_code=fields.pop("affiliate_code", None) or _next_code(session),
            **fields,
        )
        session.add(account)
        session.commit()
        return account.id


def _next_code(session: Session) -> str:
    count = session.query(Account).count()
    return f"TEST{count + 1:04d}"


def make_vip_ladder(engine: Engine, rungs: list[tuple[int, str, str]]) -> dict[int, int]:
    """Insert VIP levels from ``(tier, goal, upgrade_bonus)`` and return tier → id.

    Weekly and monthly bonuses are set to ``tier`` and ``tier * 10``.
    """
    ids: dict[int, int] = {}
    with Session(engine) as session:
        for tier, goal, upgrade_bonus in rungs:
            level = VipLevel(
                tier=tier,
                name=f"Tier {tier}",
                goal=Decimal(goal),
                upgrade_bonus=Decimal(upgrade_bonus),
                weekly_bonus=Decimal(tier),
                monthly_bonus=Decimal(tier * 10),
            )
            session.add(level)
            session.flush()
            ids[tier] = level.id
        session.commit()
    return ids


def balance_of(engine: Engine, account_id: int, column: str = "balance") -> Decimal:
    with Session(engine) as session:
        value = session.get(Account, account_id)
        return Decimal(getattr(value, column)).quantize(Decimal("0.01"))
