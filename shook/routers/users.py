"""User registration and Slack destination endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from shook.db.models import User
from shook.db.session import get_session
from shook.schema.user import SlackDestinationRequest, UserCreateRequest, UserResponse
from shook.services import channel_repository as repo

router = APIRouter(prefix="/users", tags=["users"])


def _to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        slack_channel_id=user.slack_channel_id,
        slack_user_id=user.slack_user_id,
        created_at=user.created_at,
    )


async def load_user(user_id: int, session: AsyncSession) -> User:
    user = await repo.get_user(session, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreateRequest, session: AsyncSession = Depends(get_session)) -> UserResponse:
    if await repo.get_user_by_username(session, payload.username) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already registered")

    user = await repo.create_user(session, username=payload.username, email=payload.email)
    await session.commit()
    return _to_response(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, session: AsyncSession = Depends(get_session)) -> UserResponse:
    return _to_response(await load_user(user_id, session))


@router.put("/{user_id}/slack", response_model=UserResponse)
async def set_slack_destination(
    user_id: int,
    payload: SlackDestinationRequest,
    session: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await load_user(user_id, session)
    await repo.set_slack_destination(
        session,
        user,
        slack_channel_id=payload.slack_channel_id,
        slack_user_id=payload.slack_user_id,
    )
    await session.commit()
    return _to_response(user)
