"""Command-line entry point: load the configuration and run the router."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import threading

from chatbridge.bridgemap import FULL_MAP
from chatbridge.config import Config, ConfigError
from chatbridge.router import Router

RELEASE = "1.25.3-dev"
GIT_HASH = ""
DEFAULT_CONFIG = "chatbridge.toml"

_FORMAT = "[%(asctime)s] %(levelname)-5s %(name)13s: %(message)s"
_DEBUG_FORMAT = _FORMAT + " [%(funcName)s:%(filename)s:%(lineno)d]"


def setup_logger(debug: bool = False) -> logging.Logger:
    """Configure the package logger to write to stdout; debug also via DEBUG=1."""
    enabled = debug or os.environ.get("DEBUG") == "1"
    logger = logging.getLogger("chatbridge")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_DEBUG_FORMAT if enabled else _FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if enabled else logging.INFO)
    logger.propagate = False
    if enabled:
        logging.getLogger("chatbridge.main").info("Enabling debug logging.")
    return logger


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatbridge", description="Relay messages between chat networks.")
    parser.add_argument("-conf", "--conf", default=DEFAULT_CONFIG, help="config file")
    parser.add_argument("-debug", "--debug", action="store_true", help="enable debug")
    parser.add_argument("-version", "--version", action="store_true", help="show version")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    if args.version:
        print(f"version: {RELEASE} {GIT_HASH}")
        return 0

    setup_logger(args.debug)
    logger = logging.getLogger("chatbridge.main")
    logger.info("Running version %s %s", RELEASE, GIT_HASH)
    if "-dev" in RELEASE:
        logger.info("WARNING: THIS IS A DEVELOPMENT VERSION. Things may break.")

    try:
        cfg = Config.from_file(args.conf)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 1
    cfg.general.debug = args.debug

    try:
        router = Router(cfg, FULL_MAP)
        router.start()
    except (ConfigError, RuntimeError) as exc:
        logger.error("Starting gateway failed: %s", exc)
        return 1

    logger.info("Gateway(s) started succesfully. Now relaying messages")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())