"""
SQLite trade journal.

The trader process is the only writer. It keeps one persistent write connection and
batches commits (trades are committed immediately). Readers, e.g. the status API, open
short-lived read-only connections and never raise on database errors.
"""

import json
import logging
import sqlite3
import threading
import time
from functools import wraps
from pathlib import Path
from typing import Callable, ParamSpec, TypeVar

import pandas as pd

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

_BATCH_COMMIT_INTERVAL = 2.0  # Commit at most every 2 seconds
_BATCH_COMMIT_THRESHOLD = 50  # Or after 50 pending writes


def safe_db_read(default_factory: Callable[[], T]) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator for journal read methods that returns a default value on error.
    Keeps the API responsive when the database is locked, missing or corrupt.
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except sqlite3.OperationalError as e:
                logger.warning(f"Journal read failed ({func.__name__}): {e}")
                return default_factory()
            except sqlite3.DatabaseError as e:
                logger.error(f"Journal error ({func.__name__}): {e}")
                return default_factory()
            except Exception as e:
                logger.error(f"Unexpected error in {func.__name__}: {type(e).__name__}: {e}")
                return default_factory()
        return wrapper
    return decorator


def records(df: pd.DataFrame | None) -> list[dict]:
    """DataFrame -> JSON-safe rows (NaN becomes None, numpy scalars become Python ones)."""
    if df is None or df.empty:
        return []
    return json.loads(df.to_json(orient="records"))


class TradeJournal:
    def __init__(self, path: str | Path):
        self.path = str(path)
        self._write_lock = threading.Lock()
        self._write_conn: sqlite3.Connection | None = None
        self._pending_writes = 0
        self._last_commit_time = 0.0

    # ----- Connections -----

    def _get_write_conn(self) -> sqlite3.Connection:
        if self._write_conn is None:
            with self._write_lock:
                if self._write_conn is None:
                    conn = sqlite3.connect(self.path, timeout=30, check_same_thread=False, isolation_level="DEFERRED")
                    conn.execute("PRAGMA journal_mode=WAL")
                    conn.execute("PRAGMA synchronous=NORMAL")
                    conn.execute("PRAGMA busy_timeout=10000")
                    self._write_conn = conn
                    logger.info(f"Opened journal write connection ({self.path})")
        return self._write_conn

    def _connect_ro(self) -> sqlite3.Connection:
        if not Path(self.path).exists():
            raise sqlite3.OperationalError(f"journal not found: {self.path}")
        conn = sqlite3.connect(self.path, timeout=2, isolation_level=None)  # autocommit mode
        conn.execute("PRAGMA query_only = 1")  # Prevent accidental writes
        return conn

    def _maybe_commit(self) -> None:
        """Commit if we've accumulated enough writes or enough time has passed."""
        now = time.time()
        if self._pending_writes >= _BATCH_COMMIT_THRESHOLD or (now - self._last_commit_time) >= _BATCH_COMMIT_INTERVAL:
            self.force_commit()

    def _increment_pending(self) -> None:
        self._pending_writes += 1
        self._maybe_commit()

    def force_commit(self) -> None:
        """Force an immediate commit (end of iteration, before sleeping)."""
        if self._write_conn is not None:
            try:
                self._write_conn.commit()
                self._pending_writes = 0
                self._last_commit_time = time.time()
            except sqlite3.Error as e:
                logger.warning(f"Journal commit failed: {e}")

    def close(self) -> None:
        if self._write_conn is not None:
            with self._write_lock:
                if self._write_conn is not None:
                    self._write_conn.commit()
                    self._write_conn.close()
                    self._write_conn = None
                    logger.info("Closed journal write connection")

    # ----- Schema -----

    def init_db(self) -> None:
        """Create the journal schema (idempotent)."""
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, timeout=30)
        try:
            cursor = conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS event_stream (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
                    level TEXT,
                    symbol TEXT,
                    step TEXT,
                    message TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS price_samples (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
                    symbol TEXT,
                    price REAL,
                    action TEXT,
                    moving_average REAL,
                    profit_percent REAL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS trades (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
                    symbol TEXT,
                    action TEXT,
                    from_asset TEXT,
                    to_asset TEXT,
                    amount REAL,
                    price REAL,
                    profit_percent REAL,
                    tx_hash TEXT,
                    status TEXT,
                    simulated INTEGER DEFAULT 0,
                    message TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS bot_status (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    position TEXT,
                    last_buy_price REAL,
                    last_price REAL,
                    current_step TEXT,
                    last_update DATETIME DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            cursor.execute(
                "INSERT OR IGNORE INTO bot_status (id, position, current_step) VALUES (1, 'neutral', 'Starting')"
            )
            conn.commit()
        finally:
            conn.close()

    # ----- Writes -----

    def log_event(self, level: str, message: str, symbol: str | None = None, step: str | None = None) -> None:
        conn = self._get_write_conn()
        conn.execute(
            "INSERT INTO event_stream (level, symbol, step, message) VALUES (?, ?, ?, ?)",
            (level, symbol, step, message),
        )
        self._increment_pending()

    def record_price(
        self,
        symbol: str,
        price: float,
        action: str,
        moving_average: float | None = None,
        profit_percent: float | None = None,
    ) -> None:
        conn = self._get_write_conn()
        conn.execute(
            """
            INSERT INTO price_samples (symbol, price, action, moving_average, profit_percent)
            VALUES (?, ?, ?, ?, ?)
            """,
            (symbol, float(price), action, moving_average, profit_percent),
        )
        self._increment_pending()

    def record_trade(
        self,
        symbol: str,
        action: str,
        from_asset: str,
        to_asset: str,
        amount: float,
        price: float | None,
        profit_percent: float | None = None,
        tx_hash: str | None = None,
        status: str = "SUBMITTED",
        simulated: bool = False,
        message: str | None = None,
    ) -> None:
        conn = self._get_write_conn()
        conn.execute(
            """
            INSERT INTO trades (symbol, action, from_asset, to_asset, amount, price, profit_percent, tx_hash, status, simulated, message)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (symbol, action, from_asset, to_asset, float(amount), price, profit_percent, tx_hash, status, int(simulated), message),
        )
        self.force_commit()

    def update_status(
        self,
        step: str,
        position: str | None = None,
        last_buy_price: float | None = None,
        last_price: float | None = None,
    ) -> None:
        conn = self._get_write_conn()
        if position is None:
            conn.execute(
                "UPDATE bot_status SET current_step = ?, last_update = CURRENT_TIMESTAMP WHERE id = 1",
                (step,),
            )
        else:
            conn.execute(
                """
                UPDATE bot_status
                SET position = ?, last_buy_price = ?, last_price = ?, current_step = ?, last_update = CURRENT_TIMESTAMP
                WHERE id = 1
                """,
                (position, last_buy_price, last_price, step),
            )
        self._increment_pending()

    # ----- Reads -----

    @safe_db_read(default_factory=pd.DataFrame)
    def get_events(self, limit: int = 200) -> pd.DataFrame:
        conn = self._connect_ro()
        try:
            return pd.read_sql_query(
                "SELECT * FROM event_stream ORDER BY timestamp DESC, id DESC LIMIT ?",
                conn,
                params=(int(limit),),
            )
        finally:
            conn.close()

    @safe_db_read(default_factory=pd.DataFrame)
    def get_trades(self) -> pd.DataFrame:
        conn = self._connect_ro()
        try:
            return pd.read_sql_query("SELECT * FROM trades ORDER BY timestamp DESC, id DESC", conn)
        finally:
            conn.close()

    @safe_db_read(default_factory=pd.DataFrame)
    def get_prices(self, limit: int = 100) -> pd.DataFrame:
        conn = self._connect_ro()
        try:
            return pd.read_sql_query(
                "SELECT * FROM price_samples ORDER BY timestamp DESC, id DESC LIMIT ?",
                conn,
                params=(int(limit),),
            )
        finally:
            conn.close()

    @safe_db_read(default_factory=lambda: None)
    def get_status(self) -> dict | None:
        conn = self._connect_ro()
        try:
            df = pd.read_sql_query("SELECT * FROM bot_status WHERE id = 1", conn)
            if df.empty:
                return None
            return records(df)[0]
        finally:
            conn.close()
