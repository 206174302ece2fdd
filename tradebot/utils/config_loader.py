from __future__ import annotations

import logging
import os
import threading
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

from tradebot.errors import ConfigError

logger = logging.getLogger(__name__)

_cache_lock = threading.Lock()
_cached: dict[str, Any] | None = None
_cached_path: str | None = None

_TRUTHY = {"1", "true", "yes", "on"}


def _project_root() -> Path:
    # tradebot/utils/config_loader.py -> tradebot/utils -> tradebot -> project root
    return Path(__file__).resolve().parents[2]


def default_config_path() -> Path:
    return _project_root() / "config" / "config.yaml"


def resolve_path(path: str | Path) -> Path:
    """Relative paths in the config are relative to the project root, not the CWD."""
    p = Path(path)
    return p if p.is_absolute() else _project_root() / p


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    """Override selected YAML settings with environment variables."""
    network = cfg.setdefault("network", {})
    if os.getenv("NETWORK_ID"):
        network["id"] = os.environ["NETWORK_ID"]

    agent = cfg.setdefault("agent", {})
    if os.getenv("TRADEBOT_AGENT_URL"):
        agent["base_url"] = os.environ["TRADEBOT_AGENT_URL"]

    trading = cfg.setdefault("trading", {})
    if os.getenv("TRADEBOT_POLL_INTERVAL_SECONDS"):
        trading["poll_interval_seconds"] = float(os.environ["TRADEBOT_POLL_INTERVAL_SECONDS"])
    if os.getenv("TRADEBOT_SIMULATION"):
        trading["simulation"] = os.environ["TRADEBOT_SIMULATION"].strip().lower() in _TRUTHY

    journal = cfg.setdefault("journal", {})
    if os.getenv("TRADEBOT_JOURNAL_PATH"):
        journal["path"] = os.environ["TRADEBOT_JOURNAL_PATH"]

    log_cfg = cfg.setdefault("logging", {})
    if os.getenv("TRADEBOT_LOG_LEVEL"):
        log_cfg["level"] = os.environ["TRADEBOT_LOG_LEVEL"].upper()


def validate_config(cfg: dict[str, Any]) -> None:
    """Fail fast if the configuration is missing required sections or order legs."""
    required_top = ["network", "agent", "trading", "strategy", "orders", "assets"]
    missing = [k for k in required_top if k not in cfg]
    if missing:
        raise ConfigError(f"Missing required config sections: {', '.join(missing)}")

    assets = cfg.get("assets") or {}
    orders = cfg.get("orders") or {}
    for leg in ("buy", "sell"):
        spec = orders.get(leg)
        if not isinstance(spec, dict):
            raise ConfigError(f"Missing orders.{leg} in config")
        for k in ("from_asset", "to_asset", "amount"):
            if k not in spec:
                raise ConfigError(f"Missing orders.{leg}.{k} in config")
        for k in ("from_asset", "to_asset"):
            if str(spec[k]).lower() not in {str(a).lower() for a in assets}:
                raise ConfigError(f"orders.{leg}.{k} refers to unknown asset {spec[k]!r}")
        if float(spec["amount"]) <= 0:
            raise ConfigError(f"orders.{leg}.amount must be positive")

    interval = float((cfg.get("trading") or {}).get("poll_interval_seconds", 10))
    if interval <= 0:
        raise ConfigError("trading.poll_interval_seconds must be positive")


def load_config(config_path: str | Path | None = None, *, force_reload: bool = False) -> dict[str, Any]:
    """
    Load the YAML config once and reuse it across the process.

    - Reads `config/config.yaml` by default.
    - Applies environment overrides for a small set of operational settings.
    - Returns a deep copy so callers can safely mutate local copies.
    """
    global _cached, _cached_path

    path = Path(config_path) if config_path else default_config_path()
    path_str = str(path.resolve())

    with _cache_lock:
        if not force_reload and _cached is not None and _cached_path == path_str:
            return deepcopy(_cached)

        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        with path.open("r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

        if not isinstance(cfg, dict):
            raise ConfigError(f"Config must be a YAML mapping (dict); got {type(cfg).__name__}")

        _apply_env_overrides(cfg)
        validate_config(cfg)

        _cached = cfg
        _cached_path = path_str
        logger.info("Loaded config from %s", path_str)
        return deepcopy(cfg)
