"""
wagerline.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **infrastructure-only** settings (platform
identity, provider endpoints and credentials, scheduler switch).  All
business tuning (withdrawal limits, rollover defaults, CPA defaults, VIP
windows) lives in the ``settings`` database table and reaches services as
an immutable :class:`~wagerline.engine.snapshot.PlatformSettings`.

Usage::

    from wagerline.config import load_config

    cfg = load_config()               # reads ./config.yaml by default
    print(cfg.platform_name)          # "Wagerline Dev"
    print(cfg.prefix_for("poker-games"))  # "PG"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Connection details for the game provider used for launches."""

    slug: str
    base_url: str
    agent_code: str
    agent_token: str
    agent_secret: str
    timeout_seconds: float = 10.0


@dataclass(frozen=True, slots=True)
class LedgerConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    platform_name: str
    default_currency: str
    api_port: int
    provider: ProviderConfig
    provider_prefixes: dict[str, str] = field(default_factory=dict)
    scheduler_enabled: bool = True

    def prefix_for(self, provider: str) -> str:
        """Internal-id prefix for *provider* (upper-cased slug if unmapped)."""
        prefix = self.provider_prefixes.get(provider)
        if prefix:
            return prefix
        return provider.replace("-", "").upper()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def default_config_path() -> Path:
    """``WAGERLINE_CONFIG`` if set, else ``./config.yaml``."""
    return Path(os.getenv("WAGERLINE_CONFIG", "config.yaml"))


def load_config(path: str | Path | None = None) -> LedgerConfig:
    """Read *path* and return a :class:`LedgerConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to :func:`default_config_path`.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path) if path is not None else default_config_path()
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    return config_from_dict(raw)


def config_from_dict(raw: dict) -> LedgerConfig:
    """Build a :class:`LedgerConfig` from an already-parsed mapping."""
    provider_raw = raw["provider"]
    provider = ProviderConfig(
        slug=provider_raw["slug"],
        base_url=str(provider_raw["base_url"]).rstrip("/"),
        agent_code=provider_raw["agent_code"],
        agent_token=provider_raw["agent_token"],
        agent_secret=provider_raw["agent_secret"],
        timeout_seconds=float(provider_raw.get("timeout_seconds", 10)),
    )
    return LedgerConfig(
        platform_name=raw["platform_name"],
        default_currency=raw.get("default_currency", "BRL"),
        api_port=int(raw.get("api_port", 8000)),
        provider=provider,
        provider_prefixes=dict(raw.get("provider_prefixes") or {}),
        scheduler_enabled=bool(raw.get("scheduler_enabled", True)),
    )
