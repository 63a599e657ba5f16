"""
Booking service entry point.

Runs the offline console demo or the periodic hold-expiry sweep.

Usage:
    Console demo: python main.py console
    Expiry sweep: python main.py sweep [interval_seconds]
"""

import asyncio
import logging
import sys

from gymbook.config import settings

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SEC = 300.0


async def _sweep_forever(interval: float) -> None:
    """Release expired card holds every ``interval`` seconds."""
    from gymbook.service import build_service
    from gymbook.stores.offer_catalog import sample_catalog

    service, dispatcher = build_service(settings, sample_catalog())
    logger.info(
        "Expiry sweep for '%s' running every %.0fs", settings.service_name, interval
    )
    try:
        while True:
            report = await service.release_expired_holds()
            for booking_id, error in report.failures.items():
                logger.error("Could not release %s: %s", booking_id, error)
            await asyncio.sleep(interval)
    finally:
        await dispatcher.close()


def _run_sweep_mode(args: list[str]) -> None:
    interval = float(args[0]) if args else DEFAULT_SWEEP_INTERVAL_SEC
    try:
        asyncio.run(_sweep_forever(interval))
    except KeyboardInterrupt:
        logger.info("Expiry sweep stopped")


def _run_console_mode() -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    session.run()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "sweep":
        _run_sweep_mode(sys.argv[2:])
    else:
        _run_console_mode()
