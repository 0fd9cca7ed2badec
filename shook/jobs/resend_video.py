"""Utility to resend a processed summary to every subscriber."""

from __future__ import annotations

import asyncio
import logging

from shook.core.config import settings
from shook.db.session import session_scope
from shook.services.monitor import build_channel_monitor
from shook.services.video_pipeline import VideoNotFound, VideoNotProcessed


async def resend_video(video_id: str) -> None:
    pipeline = build_channel_monitor().pipeline
    try:
        async with session_scope() as session:
            deliveries = await pipeline.resend_video(session, video_id)
    except (VideoNotFound, VideoNotProcessed) as exc:
        print(exc)
        return

    for delivery in deliveries:
        print(f"user {delivery.user_id}: {delivery.status}")
    print(f"Resent video {video_id} to {len(deliveries)} subscriber(s).")


if __name__ == "__main__":
    import sys

    if len(sys.argv) != 2:
        print("Usage: python -m shook.jobs.resend_video <VIDEO_ID>")
        sys.exit(1)

    logging.basicConfig(level=settings.log_level.upper())
    asyncio.run(resend_video(sys.argv[1]))
