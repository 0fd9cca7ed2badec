"""Run a single channel sweep from the command line."""

from __future__ import annotations

import asyncio
import logging

from shook.core.config import settings
from shook.services.monitor import build_channel_monitor


async def run_sweep() -> None:
    monitor = build_channel_monitor()
    report = await monitor.monitor_all_channels()
    if report is None:
        print("A sweep is already in progress.")
        return
    for name, value in report.as_dict().items():
        print(f"{name}: {value}")


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())
    asyncio.run(run_sweep())
