"""On-demand summary of a single video, outside the monitoring loop."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from shook.core.errors import SummarizationFailed, TranscriptError
from shook.schema.summary import SummaryRequest, SummaryResponse
from shook.services.summariser import Summariser, get_summariser
from shook.services.transcript_extractor import TranscriptExtractor, get_transcript_extractor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/summaries", tags=["summaries"])


@router.post("", response_model=SummaryResponse)
async def summarise_video(
    payload: SummaryRequest,
    extractor: TranscriptExtractor = Depends(get_transcript_extractor),
    summariser: Summariser = Depends(get_summariser),
) -> SummaryResponse:
    """Fetch captions for a video and summarise them. Nothing is stored or delivered."""

    try:
        transcript = await extractor.extract(payload.url)
    except TranscriptError as exc:
        logger.warning("On-demand transcript failed", extra={"url": payload.url, "reason": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": str(exc), "type": type(exc).__name__},
        ) from exc

    try:
        summary = await summariser.summarise(transcript.full_text, title=payload.title)
    except SummarizationFailed as exc:
        logger.warning("On-demand summary failed", extra={"video_id": transcript.video_id, "reason": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": str(exc), "type": type(exc).__name__},
        ) from exc

    return SummaryResponse(
        video_id=transcript.video_id,
        language=transcript.language_code,
        generated_captions=transcript.is_generated,
        transcript=transcript.as_timed_text(),
        summary=summary,
    )
