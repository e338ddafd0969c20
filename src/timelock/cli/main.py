# src/timelock/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, optionally resyncs reminders, then runs:
- the reminder dispatcher as a background asyncio task,
- the console command loop in the foreground.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..reminders.local_scheduler import run_notification_dispatcher

logger = logging.getLogger(__name__)


async def _startup_resync(state, settings) -> bool:
    """Rebuild every task's reminders once. Skipped while notifications are blocked."""
    if not settings.resync_on_start:
        return False
    if not state.permission.granted:
        # Rebuilding now would cancel queued reminders and fail to replace them.
        logger.info("Notifications blocked; skipping startup resync.")
        return False
    try:
        await state.tasks.resync_all()
    except Exception:
        logger.exception("Startup resync failed.")
    return True


async def _run(settings) -> None:
    state = create_initial_state(settings=settings)

    await _startup_resync(state, settings)

    dispatcher = asyncio.create_task(
        run_notification_dispatcher(
            state.scheduler,
            state.delivery,
            interval_seconds=settings.dispatch_interval_seconds,
        )
    )
    try:
        await run_console_loop(state)
    finally:
        dispatcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await dispatcher


def main() -> None:
    settings = get_settings()

    setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)

    logger.info("Starting %s...", settings.app_name)
    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
