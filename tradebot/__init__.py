"""
Moving-average trading bot.

The process entrypoint remains `main.py` at the repo root. The decision logic lives in
`tradebot/strategy/`, and everything that talks to the outside world sits behind the
ports in `tradebot/ports/`.
"""

__version__ = "0.1.0"
