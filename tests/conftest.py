from typing import Any, Callable

import pytest

from tradebot.errors import ActionError


class FakeActions:
    """In-memory action service: handlers keyed by action name."""

    def __init__(self, handlers: dict[str, Callable[[dict], Any] | Any] | None = None):
        self.handlers = dict(handlers or {})
        self.calls: list[tuple[str, dict]] = []

    def list_actions(self, *, refresh: bool = False) -> list[str]:
        return list(self.handlers)

    def require(self, *names: str) -> None:
        missing = [n for n in names if n not in self.handlers]
        if missing:
            raise ActionError(f"Required actions not available: {', '.join(missing)}")

    def invoke(self, name: str, args: dict | None = None) -> Any:
        args = args or {}
        self.calls.append((name, args))
        if name not in self.handlers:
            raise ActionError(f"POST /actions/{name} failed with HTTP 404: unknown action")
        handler = self.handlers[name]
        if isinstance(handler, Exception):
            raise handler
        return handler(args) if callable(handler) else handler


@pytest.fixture
def fake_actions() -> Callable[..., FakeActions]:
    return FakeActions


@pytest.fixture
def base_config() -> dict:
    return {
        "network": {"id": "base-sepolia"},
        "agent": {"base_url": "http://agent.test", "request_timeout_seconds": 5},
        "trading": {"symbol": "ETH/USD", "poll_interval_seconds": 10, "call_timeout_seconds": 5, "simulation": False},
        "strategy": {"price_history_length": 10, "moving_average_period": 5, "profit_threshold": 0.02, "loss_threshold": 0.01},
        "orders": {
            "native_asset": "eth",
            "gas_buffer": 0.00002,
            "buy": {"from_asset": "eth", "to_asset": "usdc", "amount": 0.00005},
            "sell": {"from_asset": "usdc", "to_asset": "eth", "amount": 0.1},
        },
        "assets": {
            "eth": {"decimals": 18},
            "usdc": {"decimals": 6, "contract_address": "0x876852425331a113d8E432eFFB3aC5BEf38f033a"},
        },
        "simulation": {"base_asset": "eth", "quote_asset": "usdc", "fee_bps": 0, "initial_balances": {"eth": 0.01, "usdc": 25.0}},
        "journal": {"enabled": False},
        "logging": {"level": "INFO"},
    }
