from __future__ import annotations
import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from pydantic import ValidationError

from nfsen_exporter.config.settings import ExporterSettings, LogLevel
from nfsen_exporter.core.errors import BindError
from nfsen_exporter.core.server import ExporterServer
from nfsen_exporter.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nfsen-exporter",
        description="Export nfcapd collector metrics to Prometheus.",
    )
    parser.add_argument("--listen", help="Address to listen on for telemetry (default :9141)")
    parser.add_argument("--path", dest="metrics_path", help="Path under which to expose metrics")
    parser.add_argument("--socket", dest="socket_path", help="Path for nfcapd collectors to connect")
    parser.add_argument(
        "--log-level", choices=[lvl.value for lvl in LogLevel], help="Log level (default INFO)"
    )
    parser.add_argument(
        "--stale-after",
        type=float,
        help="Hide exporters that did not report for this many seconds",
    )
    return parser


def load_settings(argv: Optional[List[str]] = None) -> ExporterSettings:
    """
    Flags override NFSEN_EXPORTER_* environment variables.

    Example:
      export NFSEN_EXPORTER_SOCKET_PATH=/var/run/nfsen.sock
      nfsen-exporter --listen 127.0.0.1:9141 --path /metrics
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    overrides = {k: v for k, v in vars(args).items() if v is not None}

    try:
        return ExporterSettings(**overrides)
    except ValidationError as e:
        parser.error(str(e))


async def _serve(server: ExporterServer) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, server.request_shutdown)
    await server.serve()


def main(argv: Optional[List[str]] = None) -> int:
    settings = load_settings(argv)
    setup_logging(settings.log_level.value)

    server = ExporterServer(settings)
    try:
        asyncio.run(_serve(server))
    except BindError as e:
        logger.error("socket handler failed", error=str(e))
        return 1

    logger.info("exit exporter")
    return 0


if __name__ == "__main__":
    sys.exit(main())
