from __future__ import annotations

from typing import Any, Protocol

from tradebot.domain.models import TransactionReceipt


class PriceOracle(Protocol):
    def fetch_price(self, symbol: str) -> float: ...


class TradeExecutor(Protocol):
    def get_balance(self, asset_id: str) -> float: ...

    def trade(self, from_asset: str, to_asset: str, amount: float) -> TransactionReceipt: ...


class ActionInvoker(Protocol):
    def list_actions(self) -> list[str]: ...

    def invoke(self, name: str, args: dict[str, Any] | None = None) -> Any: ...

    def require(self, *names: str) -> None: ...
