from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from .config_loader import load_config
from .server import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser with minimal CLI flags.

    Most configuration is loaded from config/drawguess.json and the
    environment. CLI flags are only for quick overrides.
    """
    parser = argparse.ArgumentParser(
        description="Run the Drawguess API server",
        epilog="Configuration is loaded from config/drawguess.json. "
               "CLI arguments override config file and environment settings."
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/drawguess.json",
        help="Path to JSON configuration file (default: config/drawguess.json)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Override server host (default: from config file)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Override server port (default: from config file)"
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Override the Ollama vision model (default: from config file)"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s"
        )
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args.config if Path(args.config).exists() else None)
    except Exception as exc:
        logger.error("Failed to load configuration: %s", exc)
        sys.exit(1)

    if args.host:
        cfg.server.host = args.host
    if args.port:
        cfg.server.port = args.port
    if args.model:
        cfg.ollama.model = args.model

    logger.info("Server configuration: %s:%d", cfg.server.host, cfg.server.port)
    logger.info(
        "Ollama backend: %s model=%s timeout=%.0fs",
        cfg.ollama.base_url,
        cfg.ollama.model,
        cfg.ollama.timeout,
    )

    app = create_app(cfg.ollama.build_client())
    uvicorn.run(app, host=cfg.server.host, port=cfg.server.port, log_level="info")


if __name__ == "__main__":
    main()
