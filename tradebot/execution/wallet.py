from __future__ import annotations

import logging
import re

from tradebot.domain.models import TransactionReceipt
from tradebot.errors import ActionError, ExecutionError
from tradebot.execution.balances import (
    ERC20_BALANCE_PATTERNS,
    AssetSpec,
    parse_balance,
    to_base_units,
    wallet_balance_patterns,
)
from tradebot.ports.market import ActionInvoker

logger = logging.getLogger(__name__)

WALLET_DETAILS_ACTION = "WalletActionProvider_get_wallet_details"
ERC20_BALANCE_ACTION = "ERC20ActionProvider_get_balance"
TRADE_ACTION = "CdpWalletActionProvider_trade"

_RE_TX_HASH = re.compile(r"0x[0-9a-fA-F]{64}")


class WalletTradeExecutor:
    """Trades and balance reads through the agent service's wallet actions."""

    def __init__(self, actions: ActionInvoker, assets: dict[str, AssetSpec]):
        self.actions = actions
        self.assets = assets

    def verify(self) -> None:
        """The trade action is mandatory; without it the bot has nothing to do."""
        try:
            self.actions.require(TRADE_ACTION, WALLET_DETAILS_ACTION)
            if any(a.is_token for a in self.assets.values()):
                self.actions.require(ERC20_BALANCE_ACTION)
        except ActionError as e:
            raise ExecutionError(f"Trading bot requires CDP wallet trade action: {e}") from e

    def _asset(self, asset_id: str) -> AssetSpec:
        spec = self.assets.get(str(asset_id).lower())
        if spec is None:
            raise ExecutionError(f"Unknown asset: {asset_id}")
        return spec

    def get_balance(self, asset_id: str) -> float:
        spec = self._asset(asset_id)
        try:
            if spec.is_token:
                raw = self.actions.invoke(ERC20_BALANCE_ACTION, {"contractAddress": spec.contract_address})
                logger.debug(f"{spec.asset_id.upper()} balance response: {raw}")
                return parse_balance(raw, ERC20_BALANCE_PATTERNS, decimals=spec.decimals)
            # Native asset: the wallet details reply reports whole units.
            raw = self.actions.invoke(WALLET_DETAILS_ACTION, {})
            return parse_balance(raw, wallet_balance_patterns(spec.asset_id), decimals=0)
        except ActionError as e:
            raise ExecutionError(f"Balance lookup for {spec.asset_id.upper()} failed: {e}") from e

    def trade(self, from_asset: str, to_asset: str, amount: float) -> TransactionReceipt:
        src = self._asset(from_asset)
        dst = self._asset(to_asset)
        units = to_base_units(amount, src.decimals)
        if units <= 0:
            raise ExecutionError(f"Trade amount {amount} {src.asset_id.upper()} rounds to zero base units")

        try:
            result = self.actions.invoke(
                TRADE_ACTION,
                {"amount": units, "fromAssetId": src.asset_id, "toAssetId": dst.asset_id},
            )
        except ActionError as e:
            raise ExecutionError(f"Failed to trade {amount} {src.asset_id.upper()} -> {dst.asset_id.upper()}: {e}") from e

        message = str(result or "").strip()
        # Wallet actions report failures as text rather than errors.
        if not message or message.lower().startswith("error"):
            raise ExecutionError(f"Trade rejected: {message[:200] or 'empty response'}")

        match = _RE_TX_HASH.search(message)
        receipt = TransactionReceipt(
            from_asset=src.asset_id,
            to_asset=dst.asset_id,
            amount=float(amount),
            tx_hash=match.group(0) if match else None,
            message=message,
        )
        logger.info(f"Trade submitted: {amount} {src.asset_id.upper()} -> {dst.asset_id.upper()} (tx: {receipt.tx_hash})")
        return receipt
