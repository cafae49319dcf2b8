"""Main entry point for the HomeAssistant monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal

import structlog

from .config import DEFAULT_CONFIG_PATH, ConfigLoader
from .errors import ConfigError, NotificationError
from .monitor import CheckResult, HealthMonitor
from .scheduler import JobScheduler

logger = structlog.get_logger(__name__)

CHECK_JOB_ID = "homeassistant_check"


def configure_logging(log_level: str) -> None:
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    # Keep request URLs (which may carry tokens) out of the logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def run_cycle(loader: ConfigLoader, monitor: HealthMonitor) -> CheckResult | None:
    """Apply the latest config, then run one check. Cycle errors are logged, not raised."""
    loader.reload_if_changed()
    monitor.update_config(loader.get())
    try:
        result = await monitor.check()
    except NotificationError as exc:
        logger.error("Monitor check failed", error=str(exc))
        return None
    if not result.ok:
        logger.warning("Monitor check failed", error=str(result.error), fail_count=result.fail_count)
    return result


async def run(config_path: str, *, once: bool = False) -> int:
    try:
        loader = ConfigLoader(config_path)
    except ConfigError as exc:
        logger.error("Failed to load config", path=config_path, error=str(exc))
        return 2

    settings = loader.get()
    monitor = HealthMonitor(settings)
    try:
        if once:
            result = await run_cycle(loader, monitor)
            return 0 if result is not None and result.ok else 1

        scheduler = JobScheduler()

        async def _job() -> None:
            await run_cycle(loader, monitor)

        # Schedule changes need a restart; only the other settings hot-reload.
        if settings.schedule:
            scheduler.add_cron_job(CHECK_JOB_ID, _job, settings.schedule, description="HomeAssistant health check")
        else:
            scheduler.add_interval_job(
                CHECK_JOB_ID, _job, settings.interval_seconds, description="HomeAssistant health check"
            )

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        scheduler.start()
        logger.info("Starting HomeAssistant Monitor", url=settings.ha_url, retry_times=settings.retry_times)
        await stop.wait()
        logger.info("Shutting down gracefully...")
        scheduler.stop()
        return 0
    finally:
        await monitor.aclose()


def main() -> int:
    parser = argparse.ArgumentParser(description="HomeAssistant health monitor")
    parser.add_argument(
        "--config",
        default=os.getenv("HA_MONITOR_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to YAML config",
    )
    parser.add_argument("--once", action="store_true", help="Run one check cycle and exit")
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (INFO, WARNING, ...)",
    )
    args = parser.parse_args()

    configure_logging(args.log_level)
    return asyncio.run(run(args.config, once=bool(args.once)))


if __name__ == "__main__":
    raise SystemExit(main())
