"""Operator endpoints guarded by the admin token."""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from shook.core.config import settings
from shook.db.session import get_session
from shook.schema.monitor import MonitorStatusResponse, SweepReportResponse
from shook.schema.video import DeliveryStatus, ResendResponse
from shook.services import channel_repository as repo
from shook.services.monitor import ChannelMonitor, SweepReport, get_channel_monitor
from shook.services.video_pipeline import VideoNotFound, VideoNotProcessed

logger = logging.getLogger(__name__)


async def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin API is disabled")
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _report_response(report: SweepReport) -> SweepReportResponse:
    return SweepReportResponse(**report.as_dict())


@router.post("/monitor/run", response_model=SweepReportResponse)
async def run_monitor(monitor: ChannelMonitor = Depends(get_channel_monitor)) -> SweepReportResponse:
    """Run one sweep now and return its report."""

    if monitor.sweep_in_progress:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A sweep is already in progress")

    try:
        report = await monitor.monitor_all_channels()
    except Exception as exc:
        logger.exception("Manual sweep failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": str(exc), "type": type(exc).__name__},
        ) from exc

    if report is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A sweep is already in progress")
    return _report_response(report)


@router.get("/monitor/status", response_model=MonitorStatusResponse)
async def monitor_status(
    monitor: ChannelMonitor = Depends(get_channel_monitor),
    session: AsyncSession = Depends(get_session),
) -> MonitorStatusResponse:
    current = monitor.status()
    return MonitorStatusResponse(
        state=current.state.value,
        active=current.active,
        sweep_in_progress=current.sweep_in_progress,
        interval_minutes=current.interval_minutes,
        last_sweep_started_at=current.last_sweep_started_at,
        last_sweep_finished_at=current.last_sweep_finished_at,
        last_report=_report_response(current.last_report) if current.last_report else None,
        pending_deliveries=await repo.count_pending_deliveries(session),
    )


@router.post("/videos/{video_id}/resend", response_model=ResendResponse)
async def resend_video(
    video_id: str,
    monitor: ChannelMonitor = Depends(get_channel_monitor),
    session: AsyncSession = Depends(get_session),
) -> ResendResponse:
    try:
        deliveries = await monitor.pipeline.resend_video(session, video_id)
    except VideoNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except VideoNotProcessed as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    await session.commit()
    return ResendResponse(
        video_id=video_id,
        deliveries=[
            DeliveryStatus(
                user_id=delivery.user_id,
                status=delivery.status,
                retry_count=delivery.retry_count,
                last_error=delivery.last_error,
                delivered_at=delivery.delivered_at,
            )
            for delivery in deliveries
        ],
    )
