"""
wagerline.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from wagerline.config import LedgerConfig, load_config
from wagerline.database.engine import create_db_engine
from wagerline.engine.snapshot import PlatformSettings, load_platform_settings
from wagerline.services.provider_client import PokerGamesClient


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> LedgerConfig:
    return load_config()


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    """Read-only session for summary endpoints.  Mutations open their own."""
    with Session(engine) as session:
        yield session


def get_platform_settings(
    session: Annotated[Session, Depends(get_session)],
) -> PlatformSettings:
    """Snapshot of the ``settings`` table for this request."""
    return load_platform_settings(session)


def get_provider_client(
    config: Annotated[LedgerConfig, Depends(get_config)],
) -> PokerGamesClient:
    return PokerGamesClient(config.provider)


EngineDep = Annotated[Engine, Depends(get_engine)]
ConfigDep = Annotated[LedgerConfig, Depends(get_config)]
SessionDep = Annotated[Session, Depends(get_session)]
SettingsDep = Annotated[PlatformSettings, Depends(get_platform_settings)]
ProviderDep = Annotated[PokerGamesClient, Depends(get_provider_client)]
