#!/usr/bin/env python3
"""
Credential Sweeper Runner

Runs the expired-credential sweeper as a standalone process, for
deployments that keep SWEEPER_ENABLED off in the web workers. A single
sweep is run with --once (suitable for cron).
"""

import sys
import os
import asyncio
import signal

# Ensure project root is on the path
ROOT_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, ROOT_DIR)

from app import build_sweeper  # noqa: E402
from config import AppSettings  # noqa: E402
from infrastructure.persistence.mongo import create_mongo_client  # noqa: E402
from shared.logging import get_logger, setup_logging  # noqa: E402

log = get_logger("start_sweeper")


async def run(once: bool) -> None:
    settings = AppSettings()
    setup_logging(settings.logging)
    client = create_mongo_client(settings.db)
    try:
        sweeper = build_sweeper(settings, client[settings.db.db_name])
        if once:
            report = await sweeper.sweep()
            log.info("credential_sweep_once_done", deleted=report.total_deleted)
            return

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
        await sweeper.run_forever(settings.sweeper.sweeper_interval_seconds, stop_event)
    finally:
        await client.close()


def main():
    """Main function to start the credential sweeper"""
    once = "--once" in sys.argv[1:]
    print("=" * 60)
    print("Starting credential sweeper" + (" (single pass)" if once else ""))
    print("=" * 60)

    try:
        asyncio.run(run(once))
    except KeyboardInterrupt:
        print("\nSweeper stopped by user")
    except Exception as e:
        print(f"\nSweeper failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
