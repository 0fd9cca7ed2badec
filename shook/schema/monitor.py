"""Pydantic models for the admin monitor endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SweepReportResponse(BaseModel):
    started_at: datetime
    finished_at: datetime | None
    channels: int
    processed: int
    failed: int
    unchanged: int
    skipped_live: int
    api_errors: int
    errors: int
    deliveries_retried: int


class MonitorStatusResponse(BaseModel):
    state: str
    active: bool
    sweep_in_progress: bool
    interval_minutes: float
    last_sweep_started_at: datetime | None
    last_sweep_finished_at: datetime | None
    last_report: SweepReportResponse | None
    pending_deliveries: int
