"""API endpoints for searching channels and managing a user's subscriptions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from shook.core.errors import ChannelResolutionError, UpstreamApiError
from shook.db.models import YoutubeChannel
from shook.db.session import get_session
from shook.routers.users import load_user
from shook.schema.channel import (
    ChannelCreateRequest,
    ChannelListResponse,
    ChannelResponse,
    ChannelSearchResponse,
    ChannelSearchResult,
)
from shook.services import channel_repository as repo
from shook.services.channel_resolver import extract_channel_id
from shook.services.monitor import ChannelMonitor, get_channel_monitor
from shook.services.youtube_api import YouTubeDataClient, get_youtube_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["channels"])


def _to_response(channel: YoutubeChannel) -> ChannelResponse:
    return ChannelResponse(
        channel_id=channel.channel_id,
        title=channel.title,
        handle=channel.handle,
        thumbnail=channel.thumbnail,
        subscriber_count=channel.subscriber_count,
        recent_video_id=channel.recent_video_id,
        is_active=channel.is_active,
        last_checked_at=channel.last_checked_at,
        last_error=channel.last_error,
    )


@router.get("/channels/search", response_model=ChannelSearchResponse)
async def search_channels(
    q: str = Query(..., min_length=1),
    youtube: YouTubeDataClient | None = Depends(get_youtube_client),
) -> ChannelSearchResponse:
    if youtube is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Channel search requires an API key")

    try:
        hits = await youtube.search_channels(q)
    except UpstreamApiError as exc:
        logger.warning("Channel search failed", extra={"query": q, "kind": exc.kind})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return ChannelSearchResponse(
        results=[
            ChannelSearchResult(
                channel_id=hit.channel_id,
                title=hit.title,
                handle=hit.handle,
                description=hit.description,
                thumbnail=hit.thumbnail,
            )
            for hit in hits
        ]
    )


@router.get("/users/{user_id}/channels", response_model=ChannelListResponse)
async def list_user_channels(user_id: int, session: AsyncSession = Depends(get_session)) -> ChannelListResponse:
    await load_user(user_id, session)
    links = await repo.list_user_channels(session, user_id)
    return ChannelListResponse(channels=[_to_response(link.channel) for link in links])


@router.post("/users/{user_id}/channels", response_model=ChannelResponse, status_code=status.HTTP_201_CREATED)
async def add_channel(
    user_id: int,
    payload: ChannelCreateRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    youtube: YouTubeDataClient | None = Depends(get_youtube_client),
    monitor: ChannelMonitor = Depends(get_channel_monitor),
) -> ChannelResponse:
    await load_user(user_id, session)

    try:
        channel_id = await extract_channel_id(payload.identifier, youtube=youtube)
    except ChannelResolutionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if await repo.is_subscribed(session, user_id, channel_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already subscribed to this channel")

    if youtube is not None:
        try:
            info = await youtube.channel_details(channel_id)
        except UpstreamApiError as exc:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
        if info is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Channel not found")
        channel = await repo.upsert_channel(session, info)
    else:
        channel = await repo.ensure_channel(session, channel_id=channel_id)

    await repo.subscribe_user(session, user_id, channel.channel_id)
    await session.commit()

    background_tasks.add_task(monitor.safe_check_channel, channel.channel_id)
    logger.info("User subscribed to channel", extra={"user_id": user_id, "channel_id": channel.channel_id})
    return _to_response(channel)


@router.delete("/users/{user_id}/channels/{channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_channel(user_id: int, channel_id: str, session: AsyncSession = Depends(get_session)) -> Response:
    await load_user(user_id, session)
    removed = await repo.unsubscribe_user(session, user_id, channel_id)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")

    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
