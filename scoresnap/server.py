import argparse
import logging
import os

import uvicorn

from scoresnap.middleware_logging import configure_logging

logger = logging.getLogger(__name__)
APP_MODULE = "scoresnap.main:app"
DEFAULT_PORT = 8000


def _port_from_env() -> int:
    for key in ("APP_PORT", "PORT"):
        value = os.getenv(key)
        if value:
            try:
                return int(value)
            except ValueError:
                logger.warning("Ignoring %s=%s (not an integer)", key, value)
    return DEFAULT_PORT


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the ScoreSnap API server.")
    parser.add_argument("--host", default=os.getenv("APP_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=None, help="Defaults to APP_PORT or PORT.")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    args = _parse_args(argv)
    port = args.port or _port_from_env()
    log_level = os.getenv("UVICORN_LOG_LEVEL", "info")
    logger.info("Starting %s on %s:%d", APP_MODULE, args.host, port)
    uvicorn.run(
        APP_MODULE,
        host=args.host,
        port=port,
        log_level=log_level,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
