"""Persistence operations for channels, subscriptions, videos and deliveries."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shook.db.models import (
    DELIVERY_PENDING,
    VIDEO_FAILED,
    VIDEO_PENDING,
    VIDEO_PROCESSED,
    Delivery,
    Failed,
    Pending,
    Processed,
    User,
    UserChannel,
    Video,
    YoutubeChannel,
    state_columns,
)
from shook.services.youtube_api import ChannelInfo, LatestUpload


async def create_user(session: AsyncSession, *, username: str, email: str | None = None) -> User:
    user = User(username=username, email=email.lower() if email else None)
    session.add(user)
    await session.flush()
    return user


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)


async def get_user_by_username(session: AsyncSession, username: str) -> User | None:
    return await session.scalar(select(User).where(User.username == username))


async def set_slack_destination(
    session: AsyncSession, user: User, *, slack_channel_id: str | None, slack_user_id: str | None = None
) -> User:
    user.slack_channel_id = slack_channel_id or None
    if slack_user_id is not None:
        user.slack_user_id = slack_user_id or None
    await session.flush()
    return user


async def list_monitored_channels(session: AsyncSession) -> Sequence[YoutubeChannel]:
    """Return each channel with at least one subscriber exactly once."""

    subscribed = select(UserChannel.channel_id)
    result = await session.scalars(
        select(YoutubeChannel).where(YoutubeChannel.channel_id.in_(subscribed)).order_by(YoutubeChannel.id)
    )
    return list(result)


async def get_channel(session: AsyncSession, channel_id: str) -> YoutubeChannel | None:
    return await session.scalar(select(YoutubeChannel).where(YoutubeChannel.channel_id == channel_id))


async def ensure_channel(session: AsyncSession, *, channel_id: str, title: str | None = None) -> YoutubeChannel:
    """Fetch or create a channel row by external identifier."""

    channel = await get_channel(session, channel_id)
    if channel:
        if title and channel.title != title:
            channel.title = title
        return channel

    channel = YoutubeChannel(channel_id=channel_id, title=title or channel_id)
    session.add(channel)
    await session.flush()
    return channel


async def upsert_channel(session: AsyncSession, info: ChannelInfo) -> YoutubeChannel:
    """Create a channel from API metadata or refresh the informational fields."""

    channel = await ensure_channel(session, channel_id=info.channel_id, title=info.title or None)
    channel.handle = info.handle
    channel.description = info.description or None
    channel.thumbnail = info.thumbnail
    channel.subscriber_count = info.subscriber_count
    channel.video_count = info.video_count
    await session.flush()
    return channel


async def list_user_channels(session: AsyncSession, user_id: int) -> Sequence[UserChannel]:
    result = await session.scalars(
        select(UserChannel)
        .options(selectinload(UserChannel.channel))
        .where(UserChannel.user_id == user_id)
        .order_by(UserChannel.created_at)
    )
    return list(result)


async def is_subscribed(session: AsyncSession, user_id: int, channel_id: str) -> bool:
    link = await session.scalar(
        select(UserChannel.id).where(UserChannel.user_id == user_id, UserChannel.channel_id == channel_id)
    )
    return link is not None


async def subscribe_user(session: AsyncSession, user_id: int, channel_id: str) -> UserChannel:
    link = UserChannel(user_id=user_id, channel_id=channel_id)
    session.add(link)
    await session.flush()
    return link


async def subscriber_count(session: AsyncSession, channel_id: str) -> int:
    count = await session.scalar(
        select(func.count()).select_from(UserChannel).where(UserChannel.channel_id == channel_id)
    )
    return int(count or 0)


async def unsubscribe_user(session: AsyncSession, user_id: int, channel_id: str) -> bool:
    """Remove a subscription; the channel and its history go with its last subscriber."""

    link = await session.scalar(
        select(UserChannel).where(UserChannel.user_id == user_id, UserChannel.channel_id == channel_id)
    )
    if link is None:
        return False

    await session.delete(link)
    await session.flush()

    if await subscriber_count(session, channel_id) == 0:
        channel = await get_channel(session, channel_id)
        if channel is not None:
            await session.delete(channel)
            await session.flush()
    return True


async def find_subscribers(session: AsyncSession, channel_id: str) -> Sequence[User]:
    result = await session.scalars(
        select(User)
        .join(UserChannel, UserChannel.user_id == User.id)
        .where(UserChannel.channel_id == channel_id)
        .order_by(User.id)
    )
    return list(result)


async def update_recent_video(session: AsyncSession, channel: YoutubeChannel, video_id: str) -> None:
    channel.recent_video_id = video_id
    await session.flush()


async def mark_channel_checked(session: AsyncSession, channel: YoutubeChannel) -> None:
    channel.last_checked_at = datetime.now(timezone.utc)
    if not channel.is_active:
        channel.is_active = True
        channel.last_error = None
        channel.last_error_at = None
    await session.flush()


async def mark_channel_error(session: AsyncSession, channel: YoutubeChannel, message: str, *, deactivate: bool) -> None:
    channel.last_error = message
    channel.last_error_at = datetime.now(timezone.utc)
    if deactivate:
        channel.is_active = False
    await session.flush()


async def get_video(session: AsyncSession, video_id: str) -> Video | None:
    return await session.scalar(select(Video).where(Video.video_id == video_id))


async def _transition(session: AsyncSession, video: Video, *, allowed_from: Sequence[str], values: dict) -> bool:
    """Compare-and-set the video row; False when another writer got there first."""

    result = await session.execute(
        update(Video)
        .where(Video.video_id == video.video_id, Video.status.in_(allowed_from))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(video)
    return result.rowcount == 1


async def begin_video(session: AsyncSession, upload: LatestUpload) -> Video | None:
    """Return the video in ``pending`` ready for an attempt, or None if already processed."""

    video = await get_video(session, upload.video_id)
    if video is None:
        video = Video(
            video_id=upload.video_id,
            channel_id=upload.channel_id,
            title=upload.title,
            published_at=upload.published_at,
            attempt_count=1,
            **state_columns(Pending()),
        )
        session.add(video)
        await session.flush()
        return video

    if video.status == VIDEO_PROCESSED:
        return None

    started = await _transition(
        session,
        video,
        allowed_from=(VIDEO_PENDING, VIDEO_FAILED),
        values={**state_columns(Pending()), "attempt_count": Video.attempt_count + 1, "title": upload.title},
    )
    return video if started else None


async def complete_video(
    session: AsyncSession,
    video: Video,
    *,
    summary: str,
    transcript: str | None,
    transcript_language: str | None,
) -> bool:
    return await _transition(
        session,
        video,
        allowed_from=(VIDEO_PENDING,),
        values={
            **state_columns(Processed(summary=summary)),
            "transcript": transcript,
            "transcript_language": transcript_language,
        },
    )


async def fail_video(session: AsyncSession, video: Video, reason: str) -> bool:
    return await _transition(session, video, allowed_from=(VIDEO_PENDING,), values=state_columns(Failed(reason=reason)))


async def list_videos_for_user(
    session: AsyncSession,
    user_id: int,
    *,
    limit: int = 20,
    since: datetime | None = None,
) -> Sequence[Video]:
    subscribed = select(UserChannel.channel_id).where(UserChannel.user_id == user_id)
    stmt = (
        select(Video)
        .options(selectinload(Video.channel))
        .where(Video.channel_id.in_(subscribed))
        .order_by(Video.created_at.desc(), Video.id.desc())
        .limit(limit)
    )
    if since is not None:
        stmt = stmt.where(Video.created_at > since)
    return list(await session.scalars(stmt))


async def get_or_create_delivery(session: AsyncSession, *, video_id: str, user_id: int) -> Delivery:
    delivery = await session.scalar(
        select(Delivery).where(Delivery.video_id == video_id, Delivery.user_id == user_id)
    )
    if delivery is not None:
        return delivery
    delivery = Delivery(video_id=video_id, user_id=user_id, status=DELIVERY_PENDING, retry_count=0)
    session.add(delivery)
    await session.flush()
    return delivery


async def list_due_deliveries(session: AsyncSession, *, now: datetime, limit: int = 50) -> Sequence[Delivery]:
    """Deliveries waiting for a retry whose backoff has elapsed."""

    result = await session.scalars(
        select(Delivery)
        .options(selectinload(Delivery.user), selectinload(Delivery.video).selectinload(Video.channel))
        .where(
            Delivery.status == DELIVERY_PENDING,
            or_(Delivery.next_retry_at.is_(None), Delivery.next_retry_at <= now),
        )
        .order_by(Delivery.next_retry_at, Delivery.id)
        .limit(limit)
    )
    return list(result)


async def count_pending_deliveries(session: AsyncSession) -> int:
    count = await session.scalar(
        select(func.count()).select_from(Delivery).where(Delivery.status == DELIVERY_PENDING)
    )
    return int(count or 0)
