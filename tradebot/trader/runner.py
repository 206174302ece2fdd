import argparse
import logging
import os
import signal
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, TypeVar

from tradebot.domain.models import Decision, TradeAction
from tradebot.errors import ConfigError, TradeBotError
from tradebot.execution.balances import load_assets
from tradebot.execution.simulated import SimulatedTradeExecutor
from tradebot.execution.wallet import WalletTradeExecutor
from tradebot.oracle.pyth import PythPriceOracle
from tradebot.ports.market import PriceOracle, TradeExecutor
from tradebot.strategy.engine import DecisionEngine, load_strategy_params
from tradebot.trader.environment import validate_environment
from tradebot.trader.timeout import CallTimeout, call_with_timeout
from tradebot.utils.config_loader import load_config, resolve_path
from tradebot.utils.journal import TradeJournal
from tradebot.wallet.actions import ActionClient, load_agent_config

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEPARATOR = "-------------------"


@dataclass(frozen=True)
class OrderLeg:
    from_asset: str
    to_asset: str
    amount: float


@dataclass(frozen=True)
class TradingConfig:
    symbol: str
    poll_interval_seconds: float
    call_timeout_seconds: float | None
    simulation: bool
    buy: OrderLeg
    sell: OrderLeg
    native_asset: str
    gas_buffer: float
    unconfirmed_trade_checks: int = 3


@dataclass
class PendingTrade:
    """A trade whose call timed out; it may or may not have executed upstream."""

    decision: Decision
    leg: OrderLeg
    balance_before: float
    checks_left: int


def _leg(raw: dict) -> OrderLeg:
    return OrderLeg(
        from_asset=str(raw["from_asset"]).lower(),
        to_asset=str(raw["to_asset"]).lower(),
        amount=float(raw["amount"]),
    )


def load_trading_config(config: dict) -> TradingConfig:
    t = config.get("trading") or {}
    o = config.get("orders") or {}
    timeout = t.get("call_timeout_seconds", 45)
    if float(t.get("poll_interval_seconds", 10)) <= 0:
        raise ConfigError("trading.poll_interval_seconds must be positive")
    return TradingConfig(
        symbol=str(t.get("symbol", "ETH/USD")),
        poll_interval_seconds=float(t.get("poll_interval_seconds", 10)),
        call_timeout_seconds=float(timeout) if timeout else None,
        simulation=bool(t.get("simulation", False)),
        buy=_leg(o["buy"]),
        sell=_leg(o["sell"]),
        native_asset=str(o.get("native_asset", "eth")).lower(),
        gas_buffer=float(o.get("gas_buffer", 0.0)),
        unconfirmed_trade_checks=max(1, int(t.get("unconfirmed_trade_checks", 3))),
    )


class TradingBot:
    """
    One strategy loop: fetch price -> decide -> (pre-check, trade, commit) -> sleep.

    The bot owns its DecisionEngine; nothing else mutates the trading state.
    """

    def __init__(
        self,
        oracle: PriceOracle,
        executor: TradeExecutor,
        engine: DecisionEngine,
        cfg: TradingConfig,
        journal: TradeJournal | None = None,
    ):
        self.oracle = oracle
        self.executor = executor
        self.engine = engine
        self.cfg = cfg
        self.journal = journal
        self.pending: PendingTrade | None = None

    def _call(self, func: Callable[..., T], *args: Any) -> T:
        return call_with_timeout(func, self.cfg.call_timeout_seconds, *args)

    def _journal(self, method: str, *args: Any, **kwargs: Any) -> None:
        if self.journal is None:
            return
        try:
            getattr(self.journal, method)(*args, **kwargs)
        except Exception as e:
            # Journal problems must not stop trading.
            logger.warning(f"Journal {method} failed: {type(e).__name__}: {e}")

    def log_balances(self) -> dict[str, float]:
        """Log the balances of every asset the order legs touch. Best-effort."""
        assets = []
        for leg in (self.cfg.buy, self.cfg.sell):
            for a in (leg.from_asset, leg.to_asset):
                if a not in assets:
                    assets.append(a)

        out: dict[str, float] = {}
        logger.info(SEPARATOR)
        logger.info("Current balances:")
        for a in assets:
            try:
                out[a] = self._call(self.executor.get_balance, a)
                logger.info(f"{a.upper()}: {out[a]:.6f} {a.upper()}")
            except Exception as e:
                logger.warning(f"Error getting {a.upper()} balance: {type(e).__name__}: {e}")
        logger.info(SEPARATOR)
        return out

    def run_once(self) -> str:
        """Execute one iteration of the strategy and describe what happened."""
        symbol = self.cfg.symbol
        price = self._call(self.oracle.fetch_price, symbol)
        decision = self.engine.observe(price)
        self._journal(
            "record_price",
            symbol,
            price,
            decision.action.value,
            moving_average=decision.moving_average,
            profit_percent=decision.profit_percent,
        )

        try:
            if self.pending is not None:
                return self._reconcile_pending()
            if decision.action is TradeAction.BUY:
                return self._execute(decision, self.cfg.buy)
            if decision.action is TradeAction.SELL:
                return self._execute(decision, self.cfg.sell)
            return f"Monitoring price at {price}. Position: {self.engine.position.value}"
        finally:
            state = self.engine.state
            self._journal(
                "update_status",
                f"Observed {decision.action.value}",
                position=state.position.value,
                last_buy_price=state.last_buy_price,
                last_price=price,
            )
            self._journal("force_commit")

    def _execute(self, decision: Decision, leg: OrderLeg) -> str:
        side = decision.action.value
        asset = leg.from_asset.upper()
        needs_gas = leg.from_asset == self.cfg.native_asset and self.cfg.gas_buffer > 0
        required = leg.amount + (self.cfg.gas_buffer if needs_gas else 0.0)

        balance = self._call(self.executor.get_balance, leg.from_asset)
        if balance < required:
            msg = f"Insufficient {asset} balance for {side} order. Have {balance} {asset}, need {required} {asset}"
            if needs_gas:
                msg += " (including gas buffer)"
            self._journal("log_event", "WARN", msg, symbol=self.cfg.symbol, step="Balance")
            return msg

        try:
            receipt = self._call(self.executor.trade, leg.from_asset, leg.to_asset, leg.amount)
        except CallTimeout:
            self.pending = PendingTrade(decision, leg, balance, self.cfg.unconfirmed_trade_checks)
            msg = f"Trade outcome unknown: {side} call timed out, no new trades until the {asset} balance settles"
            logger.warning(msg)
            self._journal("log_event", "WARN", msg, symbol=self.cfg.symbol, step="Trade")
            raise
        # Only a completed trade moves the position.
        self.engine.commit(decision)

        self._journal(
            "record_trade",
            self.cfg.symbol,
            side.upper(),
            leg.from_asset,
            leg.to_asset,
            leg.amount,
            decision.price,
            profit_percent=decision.profit_percent,
            tx_hash=receipt.tx_hash,
            simulated=receipt.simulated,
            message=receipt.message or None,
        )

        if decision.action is TradeAction.SELL:
            pl = (decision.profit_percent or 0.0) * 100
            return f"{receipt} (P/L: {pl:.2f}%)"
        return str(receipt)

    def _reconcile_pending(self) -> str:
        """Decide whether a timed-out trade went through by watching the spent asset's balance."""
        p = self.pending
        side = p.decision.action.value
        asset = p.leg.from_asset.upper()
        balance = self._call(self.executor.get_balance, p.leg.from_asset)

        if p.balance_before - balance >= p.leg.amount * (1 - 1e-6):
            self.pending = None
            self.engine.commit(p.decision)
            msg = f"Timed-out {side} order confirmed: {asset} balance went from {p.balance_before} to {balance}"
            logger.info(msg)
            self._journal(
                "record_trade",
                self.cfg.symbol,
                side.upper(),
                p.leg.from_asset,
                p.leg.to_asset,
                p.leg.amount,
                p.decision.price,
                profit_percent=p.decision.profit_percent,
                status="CONFIRMED",
                simulated=self.cfg.simulation,
                message=msg,
            )
            return msg

        p.checks_left -= 1
        if p.checks_left <= 0:
            self.pending = None
            msg = f"Timed-out {side} order not reflected in {asset} balance; treating it as not executed"
            logger.warning(msg)
            self._journal("log_event", "WARN", msg, symbol=self.cfg.symbol, step="Trade")
            return msg
        return f"Waiting for timed-out {side} order to settle. {asset} balance: {balance}. Position: {self.engine.position.value}"

    def run_forever(self, stop_event: threading.Event) -> None:
        interval = self.cfg.poll_interval_seconds
        while not stop_event.is_set():
            try:
                result = self.run_once()
                logger.info(result)
                logger.info(SEPARATOR)
            except TradeBotError as e:
                msg = f"Error in trading iteration: {type(e).__name__}: {e}"
                logger.error(msg)
                self._journal("log_event", "ERROR", msg[:500], symbol=self.cfg.symbol, step="Iteration")
            except Exception as e:
                msg = f"Unexpected error in trading iteration: {type(e).__name__}: {e}"
                logger.exception(msg)
                self._journal("log_event", "ERROR", msg[:500], symbol=self.cfg.symbol, step="Iteration")
            # Interruptible sleep; no early retry after a failure.
            stop_event.wait(interval)


def build_bot(config: dict, env: Mapping[str, str] | None = None) -> TradingBot:
    """Wire the oracle, executor, engine and journal from a loaded config."""
    env = os.environ if env is None else env
    cfg = load_trading_config(config)

    actions = ActionClient(load_agent_config(config, dict(env)))
    oracle = PythPriceOracle(actions)
    oracle.verify()

    executor: TradeExecutor
    if cfg.simulation:
        sim = config.get("simulation") or {}
        executor = SimulatedTradeExecutor(
            lambda: oracle.last_price(cfg.symbol),
            base_asset=str(sim.get("base_asset", "eth")),
            quote_asset=str(sim.get("quote_asset", "usdc")),
            initial_balances=dict(sim.get("initial_balances") or {}),
            fee_bps=float(sim.get("fee_bps", 0.0)),
        )
        logger.info("Running in simulation mode - no real transactions will be executed")
    else:
        wallet = WalletTradeExecutor(actions, load_assets(config))
        wallet.verify()
        executor = wallet

    engine = DecisionEngine(load_strategy_params(config))

    journal = None
    jcfg = config.get("journal") or {}
    if jcfg.get("enabled", True):
        journal = TradeJournal(resolve_path(str(jcfg.get("path", "tradebot.db"))))
        journal.init_db()

    return TradingBot(oracle, executor, engine, cfg, journal=journal)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Moving-average trading bot.")
    parser.add_argument("--simulation", action="store_true", help="Use the in-memory executor instead of real trades.")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between iterations.")
    parser.add_argument("--symbol", default=None, help="Trading pair, e.g. ETH/USD.")
    parser.add_argument("--config", default=None, help="Path to config.yaml.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = _parse_args(argv)
    logger.info("Starting trading bot...")

    validate_environment()

    try:
        config = load_config(args.config)
        trading = config.setdefault("trading", {})
        if args.simulation:
            trading["simulation"] = True
        if args.interval is not None:
            trading["poll_interval_seconds"] = args.interval
        if args.symbol:
            trading["symbol"] = args.symbol

        level = str((config.get("logging") or {}).get("level", "INFO")).upper()
        logging.getLogger().setLevel(getattr(logging, level, logging.INFO))

        bot = build_bot(config)
    except Exception as e:
        logger.error(f"Fatal error in trading bot: {type(e).__name__}: {e}")
        raise SystemExit(1) from e

    bot.log_balances()

    stop_event = threading.Event()

    def _stop(signum, _frame):
        logger.info(f"Received signal {signum}, stopping after the current iteration...")
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    try:
        bot.run_forever(stop_event)
    finally:
        if bot.journal is not None:
            bot.journal.close()
        logger.info("Trading bot stopped.")


if __name__ == "__main__":
    main()
