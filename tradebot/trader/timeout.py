from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Callable, TypeVar

from tradebot.errors import TradeBotError

T = TypeVar("T")


class CallTimeout(TradeBotError):
    """Raised when a single oracle/wallet call takes too long."""


def call_with_timeout(func: Callable[..., T], timeout_seconds: float | None, *args: Any, **kwargs: Any) -> T:
    """
    Execute a function with a timeout. If it takes longer than timeout_seconds, raise CallTimeout.

    A falsy timeout calls the function directly.
    Note: the underlying call keeps running in its worker thread if it times out.
    """
    if not timeout_seconds:
        return func(*args, **kwargs)

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ext_call")
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout_seconds)
    except FuturesTimeoutError as exc:
        name = getattr(func, "__name__", "call")
        raise CallTimeout(f"{name} timed out after {timeout_seconds}s") from exc
    finally:
        # Do not block on a hung call; the thread is abandoned.
        executor.shutdown(wait=False)
