from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Position(str, Enum):
    NEUTRAL = "neutral"
    LONG = "long"


class TradeAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


@dataclass(frozen=True)
class PricePoint:
    timestamp: datetime
    price: float

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "price": float(self.price)}


@dataclass(frozen=True)
class Decision:
    action: TradeAction
    price: float
    moving_average: float | None = None
    profit_percent: float | None = None

    @property
    def is_trade(self) -> bool:
        return self.action is not TradeAction.HOLD

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "price": float(self.price),
            "moving_average": self.moving_average,
            "profit_percent": self.profit_percent,
        }


@dataclass(frozen=True)
class TransactionReceipt:
    from_asset: str
    to_asset: str
    amount: float
    tx_hash: str | None = None
    message: str = ""
    simulated: bool = False

    def __str__(self) -> str:
        if self.message:
            return self.message
        kind = "Simulated trade" if self.simulated else "Traded"
        return f"{kind} {self.amount} {self.from_asset.upper()} for {self.to_asset.upper()}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_asset": self.from_asset,
            "to_asset": self.to_asset,
            "amount": float(self.amount),
            "tx_hash": self.tx_hash,
            "message": self.message,
            "simulated": bool(self.simulated),
        }
