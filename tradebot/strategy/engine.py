from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from tradebot.domain.models import Decision, Position, TradeAction
from tradebot.strategy.state import DEFAULT_HISTORY_LENGTH, TradingState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyParams:
    price_history_length: int = DEFAULT_HISTORY_LENGTH
    moving_average_period: int = 5
    profit_threshold: float = 0.02  # 2% take-profit
    loss_threshold: float = 0.01  # 1% stop-loss

    def validate(self) -> None:
        if self.price_history_length <= 0:
            raise ValueError("strategy.price_history_length must be positive")
        if not 0 < self.moving_average_period <= self.price_history_length:
            raise ValueError("strategy.moving_average_period must be between 1 and price_history_length")
        if self.profit_threshold <= 0 or self.loss_threshold <= 0:
            raise ValueError("strategy thresholds must be positive")


def load_strategy_params(config: dict) -> StrategyParams:
    s = (config.get("strategy") or {}) if isinstance(config, dict) else {}
    params = StrategyParams(
        price_history_length=int(s.get("price_history_length", DEFAULT_HISTORY_LENGTH)),
        moving_average_period=int(s.get("moving_average_period", 5)),
        profit_threshold=float(s.get("profit_threshold", 0.02)),
        loss_threshold=float(s.get("loss_threshold", 0.01)),
    )
    params.validate()
    return params


def moving_average(prices: list[float]) -> float:
    if not prices:
        return 0.0
    return sum(prices) / len(prices)


class DecisionEngine:
    """
    Moving-average entry with a fixed take-profit/stop-loss band for the exit.

    `observe()` records a sample and decides; it does not touch the position.
    The caller applies the transition with `commit()` once the trade went through,
    so a failed trade leaves the state where it was.
    """

    def __init__(self, params: StrategyParams | None = None, state: TradingState | None = None):
        self.params = params or StrategyParams()
        self.params.validate()
        if state is not None and state.history_length != self.params.price_history_length:
            raise ValueError(
                f"state.history_length ({state.history_length}) does not match "
                f"price_history_length ({self.params.price_history_length})"
            )
        self.state = state or TradingState(history_length=self.params.price_history_length)

    @property
    def position(self) -> Position:
        return self.state.position

    def observe(self, price: float, timestamp: datetime | None = None) -> Decision:
        price = float(price)
        self.state.record_price(price, timestamp)
        return self.decide(price)

    def decide(self, price: float) -> Decision:
        """Evaluate the rule against the current state (history must already contain `price`)."""
        if self.state.position is Position.NEUTRAL:
            return self._evaluate_entry(price)
        return self._evaluate_exit(price)

    def _evaluate_entry(self, price: float) -> Decision:
        prices = self.state.prices()
        period = self.params.moving_average_period
        if len(prices) < period:
            return Decision(TradeAction.HOLD, price)

        ma = moving_average(prices[-period:])
        # Price below its moving average is the entry signal.
        if price < ma:
            return Decision(TradeAction.BUY, price, moving_average=ma)
        return Decision(TradeAction.HOLD, price, moving_average=ma)

    def _evaluate_exit(self, price: float) -> Decision:
        entry = self.state.last_buy_price
        if not entry:
            raise RuntimeError("Long position without an entry price")

        profit_percent = (price - entry) / entry
        if profit_percent >= self.params.profit_threshold or profit_percent <= -self.params.loss_threshold:
            return Decision(TradeAction.SELL, price, profit_percent=profit_percent)
        return Decision(TradeAction.HOLD, price, profit_percent=profit_percent)

    def commit(self, decision: Decision) -> None:
        """Apply a confirmed decision to the state."""
        if decision.action is TradeAction.BUY:
            self.state.enter_long(decision.price)
            logger.info(f"Entered long at {decision.price}")
        elif decision.action is TradeAction.SELL:
            self.state.exit_long()
            logger.info(f"Exited long at {decision.price} (P/L: {(decision.profit_percent or 0.0) * 100:.2f}%)")

    def snapshot(self) -> dict[str, Any]:
        return self.state.to_dict()
