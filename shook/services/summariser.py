"""Utilities for generating video summaries."""

from __future__ import annotations

import asyncio
import logging
import re
from functools import lru_cache
from typing import Callable

from openai import OpenAI

from shook.core.config import settings
from shook.core.errors import SummarizationFailed

logger = logging.getLogger(__name__)


def _split_sentences(text: str) -> list[str]:
    text = text.strip()
    if not text:
        return []
    sentences = re.split(r"(?<=[.!?])\s+", text)
    return [sentence.strip() for sentence in sentences if sentence.strip()]


def generate_summary_from_transcript(transcript: str, *, title: str | None = None) -> str:
    """Heuristic summariser used when no LLM is configured."""

    sentences = _split_sentences(transcript)
    if not sentences:
        raise ValueError("Transcript is empty")

    points = [f"{index}. {sentence}" for index, sentence in enumerate(sentences[:5], start=1)]
    return "\n".join(points)


@lru_cache
def _get_openai_client() -> OpenAI:
    if not settings.openai_api_key:
        raise ValueError("OpenAI API key is not configured")
    kwargs: dict[str, str] = {"api_key": settings.openai_api_key}
    if settings.openai_base_url:
        kwargs["base_url"] = settings.openai_base_url
    return OpenAI(**kwargs)


def build_prompt(transcript: str, *, title: str | None, language: str) -> str:
    clipped_transcript = transcript[: settings.openai_max_chars]
    heading = f"Video title: {title}\n\n" if title else ""
    return (
        f"Summarise the following video transcript in {language}, clearly and systematically."
        " The captions may be auto-generated: silently correct words that look mis-transcribed"
        " and do not mention the corrections."
        ' Refer to the speaker only as "the YouTuber".'
        " Do not use markdown. Use numbered key points with dash-prefixed details, for example:\n"
        "1. Key point\n - detail one\n - detail two\n"
        "Output only the summary, with no other remarks.\n\n"
        f"{heading}Transcript:\n{clipped_transcript}"
    )


def generate_summary_via_openai(transcript: str, *, title: str | None = None) -> str:
    """Generate a summary using OpenAI Responses API."""

    if not settings.openai_api_key:
        raise ValueError("OpenAI API key is not configured")

    client = _get_openai_client()
    response = client.responses.create(
        model=settings.openai_model,
        input=[
            {"role": "system", "content": "You are an expert assistant that summarises YouTube videos."},
            {"role": "user", "content": build_prompt(transcript, title=title, language=settings.summary_language)},
        ],
    )

    raw_text = getattr(response, "output_text", "") or ""
    if not raw_text:
        chunks: list[str] = []
        for item in getattr(response, "output", []) or []:
            for piece in getattr(item, "content", []) or []:
                text = getattr(piece, "text", None)
                if text:
                    chunks.append(text)
        raw_text = "".join(chunks)

    content = raw_text.strip()
    if content.startswith("```"):
        content = content.strip("`\n").strip()
    return content


def _select_generator() -> Callable[..., str]:
    if settings.openai_api_key:
        return generate_summary_via_openai
    return generate_summary_from_transcript


class Summariser:
    """Async facade over the configured summary generator."""

    def __init__(self, generator: Callable[..., str] | None = None) -> None:
        self._generator = generator

    async def summarise(self, transcript: str, *, title: str | None = None) -> str:
        if not transcript.strip():
            raise SummarizationFailed("Transcript is empty")

        generator = self._generator or _select_generator()
        try:
            summary = await asyncio.to_thread(generator, transcript, title=title)
        except Exception as exc:
            logger.exception("Summary generation failed", extra={"title": title})
            raise SummarizationFailed(f"Summary generation failed: {exc}") from exc

        if not summary or not summary.strip():
            raise SummarizationFailed("Summariser returned an empty summary")

        logger.info("Summary generated", extra={"title": title, "length": len(summary)})
        return summary.strip()


@lru_cache
def get_summariser() -> Summariser:
    return Summariser()
