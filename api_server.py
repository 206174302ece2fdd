import sys
import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Configure logging to write to both stderr and a file immediately.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr),
        logging.FileHandler("api_server.log", mode="a"),
    ],
)
logger = logging.getLogger("api_server")


def _load_local_env() -> None:
    """Load config/secrets.env (if present) so the API sees the same overrides as `main.py`."""
    env_path = Path(__file__).resolve().parent / "config" / "secrets.env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment variables from %s", env_path)


def main() -> None:
    _load_local_env()

    try:
        # Read-only view over the journal the trader (`main.py`) writes.
        logger.info("Starting trading bot status API on 127.0.0.1:8000")
        uvicorn.run(
            "tradebot.api.app:app",
            host="127.0.0.1",
            port=8000,
            reload=False,
            log_level="info",
            workers=1,
        )
    except Exception as e:
        logger.error(f"Fatal error in API server: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
