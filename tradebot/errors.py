from __future__ import annotations


class TradeBotError(Exception):
    """Base class for errors raised by the bot's own code."""


class ConfigError(TradeBotError):
    """Configuration or environment is missing/invalid."""


class ActionError(TradeBotError):
    """The wallet/agent action service failed or rejected a call."""


class OracleError(TradeBotError):
    """A price could not be obtained for the requested symbol."""


class ExecutionError(TradeBotError):
    """A balance read or trade could not be completed."""


class InsufficientFundsError(ExecutionError):
    def __init__(self, asset_id: str, available: float, required: float):
        self.asset_id = asset_id
        self.available = available
        self.required = required
        super().__init__(f"Insufficient {asset_id.upper()} balance: have {available}, need {required}")


class BalanceUnavailableError(ExecutionError):
    """Raised instead of assuming a zero balance when a balance cannot be read."""
