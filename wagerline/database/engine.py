"""
wagerline.database.engine — Database Connection & Async Helper
===============================================================

FastAPI handlers and the APScheduler jobs run on an ``asyncio`` event loop.
SQLAlchemy + psycopg2 is **synchronous**; calling it directly from a
coroutine would stall every other request until the query returns.

Services are therefore plain synchronous functions that take an
:class:`Engine` and open their own unit of work.  Async callers go through
:func:`run_db`, which ships the call to a worker thread::

    from wagerline.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    result = await run_db(process_callback, engine, config, provider, body)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from wagerline.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    Provider callbacks arrive in bursts, so the pool allows overflow but
    fails fast rather than queueing a settlement behind a stuck connection:
    * ``pool_size=10`` — persistent connections.
    * ``max_overflow=20`` — extra connections under load.
    * ``pool_timeout=5`` — fail after 5 s if no connection is available.
    * ``pool_recycle=1800`` — recycle connections after 30 minutes.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,        # Set True for SQL debugging
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,   # Reconnect stale connections automatically
        pool_timeout=5,
        pool_recycle=1800,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`wagerline.database.models`.

    Safe to call on every startup.  After creating tables, seeds the default
    business settings and the VIP ladder; seeding only inserts what is
    missing.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from wagerline.database.seed import seed_default_settings, seed_vip_levels

    seed_default_settings(engine)
    seed_vip_levels(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back
    on exception.

    This is the unit of work for every balance-affecting operation: either
    everything inside the block is persisted, or nothing is.

    Usage::

        with get_session(engine) as session:
            account_store.increment(session, account_id, Decimal("10"))
            # commit happens automatically on block exit
    """
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every service call made from a coroutine (the async launch route,
    scheduled jobs) goes through this wrapper::

        report = await run_db(run_job, engine, "vip_weekly")

    Under the hood it calls :func:`asyncio.to_thread`, so the event loop is
    never blocked on a query.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
