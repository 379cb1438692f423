"""
monitor-core command line host.

Runs a MonitoringEngine until SIGINT/SIGTERM (or for a fixed duration),
then stops it gracefully and prints final statistics as JSON.

RUN: monitor-core --config config/ --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from monitor_core.config import load_config
from monitor_core.engine import MonitoringEngine
from monitor_core.health.probes import HostResourceProbe
from monitor_core.utils.logging_config import LoggingConfig, setup_logging

logger = logging.getLogger(__name__)

HOST_COMPONENT = "Host"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="monitor-core",
        description="Metrics and alerting engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  monitor-core                                # Defaults, run until Ctrl-C
  monitor-core --config monitor.yaml          # Single YAML config file
  monitor-core --config config/ --no-defaults # Per-section YAML, empty catalog
  monitor-core --host-metrics --run-seconds 120
        """,
    )

    parser.add_argument("--config", type=Path, help="YAML config file or directory")
    parser.add_argument("--no-defaults", action="store_true", help="Skip the default catalog")
    parser.add_argument(
        "--host-metrics",
        action="store_true",
        help="Record local CPU and memory usage and probe host headroom",
    )
    parser.add_argument("--sample-interval", type=float, default=5.0, help="Host sampling interval (s)")
    parser.add_argument("--run-seconds", type=float, help="Stop after this many seconds")

    # Logging
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", default="rich", choices=["rich", "json"])
    parser.add_argument("--log-file", type=Path, help="Log file path")

    return parser


async def _sample_host(engine: MonitoringEngine, interval: float, stop: asyncio.Event) -> None:
    import psutil

    while not stop.is_set():
        engine.record_by_name("system_cpu_usage", psutil.cpu_percent(interval=None), {"host": "local"})
        memory = psutil.virtual_memory()
        # Utilisation percent so the default high-memory rule (85) applies
        engine.record_by_name("system_memory_usage", memory.percent, {"host": "local", "type": "percent"})
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if args.no_defaults:
        config.load_defaults = False

    engine = MonitoringEngine(config)
    if args.host_metrics:
        engine.health.add_component(HOST_COMPONENT, probe=HostResourceProbe())

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("[Engine] Received shutdown signal...")
        stop.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    sampler = None
    await engine.start()
    try:
        if args.host_metrics:
            sampler = asyncio.create_task(_sample_host(engine, args.sample_interval, stop))
        if args.run_seconds:
            try:
                await asyncio.wait_for(stop.wait(), timeout=args.run_seconds)
            except asyncio.TimeoutError:
                logger.info(f"[Engine] Run time of {args.run_seconds}s elapsed")
        else:
            await stop.wait()
    finally:
        stop.set()
        if sampler is not None:
            await sampler
        await engine.stop()

    print(json.dumps(engine.get_stats(), indent=2, default=str))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(LoggingConfig(level=args.log_level, format=args.log_format, log_file=args.log_file))
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
