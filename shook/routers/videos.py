"""API endpoints exposing processed videos."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shook.db.models import Video
from shook.db.session import get_session
from shook.routers.users import load_user
from shook.schema.video import VideoDetail, VideoStatus
from shook.services import channel_repository as repo

router = APIRouter(tags=["videos"])


def _map_video(video: Video) -> VideoStatus:
    return VideoStatus(
        video_id=video.video_id,
        title=video.title,
        channel_id=video.channel_id,
        channel=video.channel.title if video.channel else None,
        published_at=video.published_at,
        status=video.status,
        summary=video.summary,
        error=video.error_message,
        attempt_count=video.attempt_count,
        created_at=video.created_at,
        processed_at=video.processed_at,
    )


@router.get("/users/{user_id}/videos", response_model=list[VideoStatus])
async def list_videos(
    user_id: int,
    limit: int = Query(20, ge=1, le=200),
    since: datetime | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[VideoStatus]:
    await load_user(user_id, session)
    videos = await repo.list_videos_for_user(session, user_id, limit=limit, since=since)
    return [_map_video(video) for video in videos]


@router.get("/videos/{video_id}", response_model=VideoDetail)
async def get_video(video_id: str, session: AsyncSession = Depends(get_session)) -> VideoDetail:
    stmt = select(Video).options(selectinload(Video.channel)).where(Video.video_id == video_id)
    video = await session.scalar(stmt)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")

    return VideoDetail(
        **_map_video(video).model_dump(),
        transcript=video.transcript,
        transcript_language=video.transcript_language,
    )
