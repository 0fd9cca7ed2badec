"""Tests for summary generation."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from shook.core.errors import SummarizationFailed
from shook.services import summariser

pytest_plugins = ("pytest_asyncio",)


def test_heuristic_summary_numbers_leading_sentences() -> None:
    text = "One. Two! Three? Four. Five. Six."
    assert summariser.generate_summary_from_transcript(text) == "1. One.\n2. Two!\n3. Three?\n4. Four.\n5. Five."


def test_build_prompt_clips_transcript(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(summariser.settings, "openai_max_chars", 10)

    prompt = summariser.build_prompt("abcdefghijKLMNOP", title="Demo", language="Korean")

    assert "in Korean" in prompt
    assert "the YouTuber" in prompt
    assert "Video title: Demo" in prompt
    assert prompt.endswith("Transcript:\nabcdefghij")


def test_generate_summary_via_openai_uses_responses_api(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict = {}

    class FakeResponses:
        def create(self, **kwargs):
            captured.update(kwargs)
            return SimpleNamespace(output_text="```\n1. Point\n - detail\n```")

    monkeypatch.setattr(summariser.settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(summariser.settings, "openai_model", "gpt-test")
    monkeypatch.setattr(summariser, "_get_openai_client", lambda: SimpleNamespace(responses=FakeResponses()))

    result = summariser.generate_summary_via_openai("Some transcript.", title="Demo")

    assert result == "1. Point\n - detail"
    assert captured["model"] == "gpt-test"
    assert captured["input"][1]["role"] == "user"


@pytest.mark.asyncio
async def test_summarise_uses_injected_generator() -> None:
    calls = []

    def generator(transcript: str, *, title: str | None = None) -> str:
        calls.append((transcript, title))
        return "  1. Done  "

    result = await summariser.Summariser(generator).summarise("text here.", title="Demo")

    assert result == "1. Done"
    assert calls == [("text here.", "Demo")]


@pytest.mark.asyncio
async def test_summarise_rejects_empty_transcript() -> None:
    with pytest.raises(SummarizationFailed, match="empty"):
        await summariser.Summariser(lambda transcript, **_: "x").summarise("   ")


@pytest.mark.asyncio
async def test_summarise_wraps_generator_errors() -> None:
    def generator(transcript: str, *, title: str | None = None) -> str:
        raise RuntimeError("rate limited")

    with pytest.raises(SummarizationFailed, match="rate limited"):
        await summariser.Summariser(generator).summarise("text.")


@pytest.mark.asyncio
async def test_summarise_rejects_empty_answer() -> None:
    with pytest.raises(SummarizationFailed):
        await summariser.Summariser(lambda transcript, **_: "").summarise("text.")


@pytest.mark.asyncio
async def test_summarise_falls_back_to_heuristic_without_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(summariser.settings, "openai_api_key", None)

    assert await summariser.Summariser().summarise("Alpha. Beta.") == "1. Alpha.\n2. Beta."
