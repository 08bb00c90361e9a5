"""
Command-line entry point for the pool sync client.

``pool-sync watch`` keeps a live snapshot and logs every change;
``pool-sync send`` issues one command and exits with its outcome.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import replace
from typing import Any, Optional, Sequence

from pool_sync.utils.env import env_flag_enabled

from .config import ClientConfig, load_client_config
from .context import ConnectionStatus, Snapshot
from .logging_policy import LOG_FORMAT
from .sync_client import PoolSyncClient

logger = logging.getLogger(__name__)

_WEBSOCKETS_LOGGERS = ("websockets", "websockets.client", "websockets.protocol")


def configure_logging(debug: bool = False) -> None:
    # Root stays at INFO; --debug lowers only the package loggers.
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    if debug:
        logging.getLogger("pool_sync").setLevel(logging.DEBUG)
    if not env_flag_enabled("POOL_SYNC_WEBSOCKETS_DEBUG"):
        for name in _WEBSOCKETS_LOGGERS:
            logging.getLogger(name).setLevel(logging.INFO)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pool-sync", description="Pool controller sync client")
    parser.add_argument("--host", default=None, help="Controller host (default from settings/env)")
    parser.add_argument("--port", type=int, default=None, help="Controller port")
    parser.add_argument("--ssl", action="store_true", help="Use https/wss")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--fill-schedules",
        action="store_true",
        help="Fetch /config/schedules when the state document lacks them",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    watch = sub.add_parser("watch", help="Connect and log state changes")
    watch.add_argument("--duration", type=float, default=None, help="Seconds to run (default: until interrupted)")

    send = sub.add_parser("send", help="Send one command")
    send.add_argument("endpoint", help="Command path, e.g. /state/circuit/setState")
    send.add_argument("parameters", help='JSON object body, e.g. \'{"id": 6, "state": true}\'')
    send.add_argument("--method", choices=("PUT", "POST"), default="PUT")
    return parser


def config_from_args(args: argparse.Namespace, base: Optional[ClientConfig] = None) -> ClientConfig:
    cfg = base if base is not None else load_client_config()
    if args.host:
        cfg = replace(cfg, host=args.host)
    if args.port is not None:
        cfg = replace(cfg, port=args.port)
    if args.ssl:
        cfg = replace(cfg, use_ssl=True)
    if args.fill_schedules:
        cfg = replace(cfg, fill_missing_schedules=True)
    return cfg


def _log_change(name: str, value: Any) -> None:
    if name == "snapshot" and isinstance(value, Snapshot):
        logger.info("snapshot: %s", value.summary())
    elif name == "status" and isinstance(value, ConnectionStatus):
        logger.info("stream %s", value.value)
    elif name == "polling_reachable":
        logger.info("reachable via polling: %s", value)
    elif name == "last_error" and value is not None:
        logger.warning("error: %s", value)


async def run_watch(client: PoolSyncClient, duration: Optional[float]) -> int:
    unsubscribe = client.context.subscribe(_log_change)
    try:
        async with client:
            await client.connect()
            if duration is not None:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()
    finally:
        unsubscribe()
    return 0


async def run_send(client: PoolSyncClient, endpoint: str, parameters: Any, method: str) -> int:
    async with client:
        result = await client.dispatch(endpoint, parameters, method=method)
    if result.ok:
        logger.info("%s ok", endpoint)
        return 0
    logger.error("%s", result.error)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug)

    cfg = config_from_args(args)
    logger.debug("config: %s", cfg.as_dict())

    if args.command == "send":
        try:
            parameters = json.loads(args.parameters)
        except ValueError as exc:
            parser.error(f"parameters must be JSON: {exc}")
        if not isinstance(parameters, dict):
            parser.error("parameters must be a JSON object")
        runner = run_send(PoolSyncClient(cfg), args.endpoint, parameters, args.method)
    else:
        runner = run_watch(PoolSyncClient(cfg), args.duration)

    try:
        return asyncio.run(runner)
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


__all__ = ["build_parser", "config_from_args", "configure_logging", "main", "run_send", "run_watch"]
