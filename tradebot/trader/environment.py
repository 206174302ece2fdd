from __future__ import annotations

import logging
import os
from typing import Mapping

from tradebot.wallet.actions import DEFAULT_NETWORK_ID

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("CDP_API_KEY_NAME", "CDP_API_KEY_PRIVATE_KEY")


def missing_env_vars(env: Mapping[str, str] | None = None) -> list[str]:
    env = os.environ if env is None else env
    return [name for name in REQUIRED_ENV_VARS if not (env.get(name) or "").strip()]


def validate_environment(env: Mapping[str, str] | None = None) -> None:
    """Exit with status 1 if required credentials are missing; warn about optional ones."""
    env = os.environ if env is None else env
    missing = missing_env_vars(env)
    if missing:
        logger.error("Required environment variables are not set")
        for name in missing:
            logger.error(f"{name}=your_{name.lower()}_here")
        raise SystemExit(1)

    if not (env.get("NETWORK_ID") or "").strip():
        logger.warning(f"NETWORK_ID not set, defaulting to {DEFAULT_NETWORK_ID} testnet")
