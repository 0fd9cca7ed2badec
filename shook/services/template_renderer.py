"""Slack message template rendering utilities."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from shook.db.models import Video

_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=select_autoescape(disabled_extensions=("txt",)),
    trim_blocks=True,
    lstrip_blocks=True,
)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

# Slack rejects section text longer than 3000 characters.
_SECTION_LIMIT = 3000


@dataclass(slots=True)
class RenderedMessage:
    """A Slack message: fallback text plus Block Kit blocks."""

    text: str
    blocks: list[dict[str, Any]] = field(default_factory=list)


def _clip(text: str, limit: int = _SECTION_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def render_summary_message(*, video: Video, summary: str, channel_title: str | None = None) -> RenderedMessage:
    """Render the Slack message announcing a new video summary."""

    url = WATCH_URL.format(video_id=video.video_id)
    template = _env.get_template("slack_summary.txt.jinja")
    body = template.render(video=video, summary=summary, channel_title=channel_title, url=url).strip()

    blocks: list[dict[str, Any]] = [
        {"type": "header", "text": {"type": "plain_text", "text": "🎬 New video summary"}},
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": _clip(f"*{video.title}*\n\n{summary}")},
            "accessory": {
                "type": "button",
                "text": {"type": "plain_text", "text": "Watch 🎥"},
                "url": url,
                "action_id": "view_video",
            },
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"📺 {channel_title or video.channel_id} · 🔗 <{url}|Video link>",
                }
            ],
        },
    ]
    return RenderedMessage(text=body, blocks=blocks)


def render_error_report(*, error: BaseException, context: dict[str, Any]) -> str:
    """Render the operational alert posted when the pipeline catches an error."""

    template = _env.get_template("error_report.txt.jinja")
    extra = context.get("extra") or {}
    return template.render(
        error_type=type(error).__name__,
        error=str(error) or repr(error),
        context=context,
        extra_json=json.dumps(extra, ensure_ascii=False, indent=2, default=str) if extra else None,
    ).strip()
