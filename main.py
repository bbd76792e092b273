#!/usr/bin/env python3
"""Command-line entry point for the structured dialogue service."""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config.settings import AppConfig, get_default_config
from stores.providers import StoreFactory

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Structured dialogue service")
    parser.add_argument(
        "--web",
        action="store_true",
        help="start the REST + WebSocket server",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("dialogue_config.json"),
        help="configuration file, created from the template when missing",
    )
    parser.add_argument("--port", type=int, help="override system.port")
    return parser.parse_args(argv)


def apply_log_level(config: AppConfig) -> None:
    """Apply the configured level; the handler itself is installed by web.api."""
    logging.getLogger().setLevel(config.system.log_level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def run_server(config: AppConfig) -> None:
    """Configure the shared session manager and serve the API with uvicorn."""
    import uvicorn

    from web.api import app, session_manager

    apply_log_level(config)
    session_manager.configure(config, StoreFactory.create_store(config.store))

    host, port = config.system.host, config.system.port
    logger.info(f"Serving dialogue API on http://{host}:{port}/docs")
    logger.info(f"Session updates on ws://{host}:{port}/v1/ws/session/{{id}}")
    uvicorn.run(app, host=host, port=port, log_level=config.system.log_level.lower())


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    config = get_default_config(args.config)
    if args.port is not None:
        config.system.port = args.port

    if args.web:
        run_server(config)
        return

    print(f"Configuration: {args.config.resolve()}")
    print(f"  store:  {config.store.provider}")
    print(
        f"  limits: {config.dialogue.max_turns} turns, "
        f"{config.dialogue.max_challenges} challenges, "
        f"{config.dialogue.max_rebuttals} rebuttals"
    )
    print("Run 'python main.py --web' to start the server.")


if __name__ == "__main__":
    main()
