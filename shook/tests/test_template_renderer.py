"""Tests for the Slack message template renderer."""

from shook.db.models import Video
from shook.services.template_renderer import render_error_report, render_summary_message


def _video(title: str = "A Great Video") -> Video:
    return Video(video_id="abc12345678", channel_id="UC" + "A" * 22, title=title, status="processed")


def test_render_summary_message():
    rendered = render_summary_message(video=_video(), summary="1. Point one\n - detail", channel_title="Demo")

    assert rendered.text.startswith("New video summary from Demo: A Great Video")
    assert "1. Point one\n - detail" in rendered.text
    assert "youtube.com/watch?v=abc12345678" in rendered.text

    header, section, context = rendered.blocks
    assert header["type"] == "header"
    assert section["text"]["text"].startswith("*A Great Video*")
    assert section["accessory"]["url"] == "https://www.youtube.com/watch?v=abc12345678"
    assert "Demo" in context["elements"][0]["text"]


def test_render_summary_message_clips_long_sections():
    rendered = render_summary_message(video=_video(), summary="x" * 5000)

    section = rendered.blocks[1]["text"]["text"]
    assert len(section) == 3000
    assert section.endswith("…")
    assert "UC" + "A" * 22 in rendered.blocks[2]["elements"][0]["text"]


def test_render_error_report_includes_context():
    text = render_error_report(
        error=ValueError("quota gone"),
        context={
            "service": "VideoClassifier",
            "operation": "classify",
            "channel_id": None,
            "video_id": "abc12345678",
            "user_id": None,
            "extra": {"kind": "quota_exceeded"},
        },
    )

    assert "Service: VideoClassifier" in text
    assert "Operation: classify" in text
    assert "Video: abc12345678" in text
    assert "Channel:" not in text
    assert "Error: ValueError: quota gone" in text
    assert '"kind": "quota_exceeded"' in text
