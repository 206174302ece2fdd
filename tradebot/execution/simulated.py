from __future__ import annotations

import logging
import uuid
from typing import Callable

from tradebot.domain.models import TransactionReceipt
from tradebot.errors import ExecutionError, InsufficientFundsError

logger = logging.getLogger(__name__)


class SimulatedTradeExecutor:
    """
    In-memory stand-in for the wallet executor (simulation mode).

    Fills every trade in full at the last observed price of `base_asset` quoted in
    `quote_asset`, minus an optional fee. Only the base/quote pair can be traded.
    """

    def __init__(
        self,
        price_lookup: Callable[[], float | None],
        *,
        base_asset: str = "eth",
        quote_asset: str = "usdc",
        initial_balances: dict[str, float] | None = None,
        fee_bps: float = 0.0,
    ) -> None:
        self._price_lookup = price_lookup
        self.base_asset = base_asset.lower()
        self.quote_asset = quote_asset.lower()
        self.fee_bps = float(fee_bps)
        self._balances: dict[str, float] = {str(k).lower(): float(v) for k, v in (initial_balances or {}).items()}

    def get_balance(self, asset_id: str) -> float:
        return self._balances.get(str(asset_id).lower(), 0.0)

    def balances(self) -> dict[str, float]:
        return dict(self._balances)

    def _rate(self, from_asset: str, to_asset: str) -> float:
        price = self._price_lookup()
        if price is None or price <= 0:
            raise ExecutionError("No price available for simulated fill")
        if (from_asset, to_asset) == (self.base_asset, self.quote_asset):
            return float(price)
        if (from_asset, to_asset) == (self.quote_asset, self.base_asset):
            return 1.0 / float(price)
        raise ExecutionError(f"Unsupported simulated pair: {from_asset} -> {to_asset}")

    def trade(self, from_asset: str, to_asset: str, amount: float) -> TransactionReceipt:
        src, dst = str(from_asset).lower(), str(to_asset).lower()
        amount = float(amount)
        if amount <= 0:
            raise ExecutionError(f"Invalid trade amount: {amount}")

        available = self.get_balance(src)
        if amount > available:
            raise InsufficientFundsError(src, available, amount)

        received = amount * self._rate(src, dst)
        received -= received * (self.fee_bps / 10000.0)

        self._balances[src] = available - amount
        self._balances[dst] = self.get_balance(dst) + received

        receipt = TransactionReceipt(
            from_asset=src,
            to_asset=dst,
            amount=amount,
            tx_hash=f"sim-{uuid.uuid4().hex[:16]}",
            message=f"Simulated trade of {amount} {src.upper()} for {received:.6f} {dst.upper()}",
            simulated=True,
        )
        logger.info(receipt.message)
        return receipt
