# app.py -- Entry point: CLI, logging setup, collector lifecycle
# Runs one listener thread per probe. When a status port is configured the
# main thread serves the read-only FastAPI status app; otherwise it parks
# until SIGINT/SIGTERM.

from __future__ import annotations

import argparse
import logging
import logging.handlers
import os
import signal
import threading
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from . import __author__, __version__
from .api.routes import router
from .config import ConfigError, default_config_path, load_config
from .netflow.collector import Collector, CollectorError, DiagnosticLog
from .sinks import check_database

log = logging.getLogger(__name__)

SYSLOG_IDENT = "netflow_collector"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """The collector is started by main(); stop it when the server shuts down."""
    app.state.start_time = getattr(app.state, "start_time", time.time())
    yield
    collector = getattr(app.state, "collector", None)
    if collector is not None:
        collector.stop()


app = FastAPI(title="NetFlow Collector", version=__version__, lifespan=lifespan)
app.include_router(router)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netflow-collector",
        description="Collect NetFlow v9 exports from multiple probes and store the flows.",
        epilog="Probes and storage are configured in an INI file (see nf_sond.ini).",
    )
    parser.add_argument(
        "-v", "--version", action="store_true", help="show version and author information"
    )
    parser.add_argument(
        "-d",
        "--display",
        action="store_true",
        help="log incoming packets and their acceptance status",
    )
    parser.add_argument(
        "--config",
        default=default_config_path(),
        metavar="PATH",
        help="path to configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "--checkdb",
        action="store_true",
        help="check database connection, create the table if necessary, and exit",
    )
    parser.add_argument(
        "--diag", metavar="PATH", help="append a hex dump of every received packet to PATH"
    )
    return parser


def setup_logging(to_syslog: bool = False) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    if not to_syslog:
        return
    address: str | tuple[str, int] = "/dev/log" if os.path.exists("/dev/log") else ("localhost", 514)
    try:
        handler = logging.handlers.SysLogHandler(address=address)
    except OSError as e:
        log.warning("Syslog unavailable (%s), logging to stderr only", e)
        return
    handler.ident = f"{SYSLOG_IDENT}: "
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
    logging.getLogger().addHandler(handler)


def _wait_for_signal(collector: Collector) -> None:
    shutdown = threading.Event()

    def _handle(signum: int, _frame: object) -> None:
        log.info("Received signal %d, shutting down", signum)
        shutdown.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)
    shutdown.wait()
    collector.stop()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print(f"NetFlow Collector Version {__version__}")
        print(f"Author: {__author__}")
        return 0

    setup_logging()
    try:
        config = load_config(args.config)
    except ConfigError as e:
        log.error("Failed to load configuration: %s", e)
        return 1

    if config.log_to_syslog:
        setup_logging(to_syslog=True)
    log.info("NetFlow Collector %s starting (%d probe(s))", __version__, len(config.probes))

    diagnostics = None
    if args.diag:
        diagnostics = DiagnosticLog(args.diag)
        try:
            diagnostics.open_check()
        except CollectorError as e:
            log.error("%s", e)
            return 1

    if args.checkdb:
        if check_database(config.database):
            log.info("Database check completed successfully")
            return 0
        log.error("Database check failed")
        return 1

    collector = Collector.from_config(config, diagnostics=diagnostics, display=args.display)
    try:
        collector.start()
    except CollectorError as e:
        log.error("%s", e)
        return 1

    if config.status_port:
        app.state.collector = collector
        app.state.start_time = time.time()
        uvicorn.run(app, host=config.status_host, port=config.status_port, log_level="info")
        # uvicorn returns after its own signal handling; make sure the workers are down
        if not collector.wait(timeout=0):
            collector.stop()
    else:
        _wait_for_signal(collector)

    log.info("NetFlow Collector stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
