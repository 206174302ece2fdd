from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from tradebot.domain.models import Position, PricePoint

DEFAULT_HISTORY_LENGTH = 10


@dataclass
class TradingState:
    """
    Mutable trading state owned by a single execution loop.

    `last_buy_price` is set if and only if `position` is LONG. Transitions go through
    `enter_long()` / `exit_long()` so the pair is never updated half-way.
    """

    history_length: int = DEFAULT_HISTORY_LENGTH
    position: Position = Position.NEUTRAL
    last_buy_price: float | None = None
    price_history: deque[PricePoint] = field(init=False)

    def __post_init__(self) -> None:
        if int(self.history_length) <= 0:
            raise ValueError("history_length must be positive")
        self.price_history = deque(maxlen=int(self.history_length))

    def record_price(self, price: float, timestamp: datetime | None = None) -> PricePoint:
        """Append a sample; the oldest one is evicted once the history is full."""
        point = PricePoint(timestamp=timestamp or datetime.now(tz=timezone.utc), price=float(price))
        self.price_history.append(point)
        return point

    def prices(self) -> list[float]:
        return [p.price for p in self.price_history]

    def enter_long(self, price: float) -> None:
        if self.position is Position.LONG:
            raise ValueError("Already long; cannot enter again")
        self.position = Position.LONG
        self.last_buy_price = float(price)

    def exit_long(self) -> None:
        if self.position is not Position.LONG:
            raise ValueError("Not long; nothing to exit")
        self.position = Position.NEUTRAL
        self.last_buy_price = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position.value,
            "last_buy_price": self.last_buy_price,
            "price_history": [p.to_dict() for p in self.price_history],
        }
