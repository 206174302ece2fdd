"""
Trading loop package.

The process entrypoint remains `main.py` at the repo root. The loop, its wiring and the
startup checks live under `tradebot/trader/` to keep the entrypoint thin and testable.
"""
