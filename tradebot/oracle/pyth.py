from __future__ import annotations

import logging
import math
from typing import Any

from tradebot.errors import ActionError, OracleError
from tradebot.ports.market import ActionInvoker

logger = logging.getLogger(__name__)

FETCH_PRICE_FEED_ACTION = "PythActionProvider_fetch_price_feed"
FETCH_PRICE_ACTION = "PythActionProvider_fetch_price"


def base_asset(symbol: str) -> str:
    """'ETH/USD' -> 'ETH'."""
    base = str(symbol or "").split("/")[0].strip().upper()
    if not base:
        raise OracleError(f"Invalid trading pair symbol: {symbol!r}")
    return base


def _parse_price(raw: Any) -> float:
    if isinstance(raw, dict):
        raw = raw.get("price")
    try:
        price = float(raw)
    except (TypeError, ValueError) as e:
        raise OracleError(f"Invalid price data format: {str(raw)[:100]!r}") from e
    if not math.isfinite(price) or price <= 0:
        raise OracleError(f"Oracle returned a non-positive price: {price}")
    return price


class PythPriceOracle:
    """Price oracle backed by the agent service's Pyth actions (feed lookup, then price)."""

    def __init__(self, actions: ActionInvoker):
        self.actions = actions
        self._feed_ids: dict[str, str] = {}
        self.last_prices: dict[str, float] = {}

    def verify(self) -> None:
        try:
            self.actions.require(FETCH_PRICE_FEED_ACTION, FETCH_PRICE_ACTION)
        except ActionError as e:
            raise OracleError(f"Price feed tools not available: {e}") from e

    def _feed_id(self, asset: str) -> str:
        cached = self._feed_ids.get(asset)
        if cached:
            return cached
        result = self.actions.invoke(FETCH_PRICE_FEED_ACTION, {"tokenSymbol": asset})
        if not isinstance(result, str) or not result.strip():
            raise OracleError(f"Could not get price feed ID for {asset}")
        feed_id = result.strip()
        self._feed_ids[asset] = feed_id
        logger.debug(f"Resolved Pyth feed for {asset}: {feed_id}")
        return feed_id

    def fetch_price(self, symbol: str) -> float:
        asset = base_asset(symbol)
        try:
            feed_id = self._feed_id(asset)
            raw = self.actions.invoke(FETCH_PRICE_ACTION, {"priceFeedID": feed_id})
        except ActionError as e:
            raise OracleError(f"Price fetch failed for {symbol}: {e}") from e
        price = _parse_price(raw)
        self.last_prices[asset] = price
        return price

    def last_price(self, symbol: str) -> float | None:
        return self.last_prices.get(base_asset(symbol))
