import httpx
import pytest

from shook.core.errors import ChannelResolutionError
from shook.services import channel_resolver
from shook.services.youtube_api import YouTubeDataClient

pytest_plugins = ("pytest_asyncio",)

CHANNEL_ID = "UC" + "B" * 22


def _youtube(handler) -> YouTubeDataClient:
    return YouTubeDataClient("dummy-key", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_extract_channel_id_passes_through_raw_id() -> None:
    channel_id = "UC" + "A" * 22
    assert await channel_resolver.extract_channel_id(channel_id) == channel_id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        f"https://www.youtube.com/channel/{CHANNEL_ID}",
        f"https://www.youtube.com/feeds/videos.xml?channel_id={CHANNEL_ID}",
        f"  {CHANNEL_ID}  ",
    ],
)
async def test_extract_channel_id_from_urls(raw: str) -> None:
    assert await channel_resolver.extract_channel_id(raw) == CHANNEL_ID


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["@demo", "https://www.youtube.com/@demo"])
async def test_extract_channel_id_resolves_handle(raw: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        assert params["forHandle"] == "demo"
        assert params["part"] == "id"
        assert params["key"] == "dummy-key"
        return httpx.Response(200, json={"items": [{"id": CHANNEL_ID}]})

    assert await channel_resolver.extract_channel_id(raw, youtube=_youtube(handler)) == CHANNEL_ID


@pytest.mark.asyncio
async def test_extract_channel_id_handle_requires_api_key() -> None:
    with pytest.raises(ChannelResolutionError, match="requires SHOOK_YOUTUBE_API_KEY"):
        await channel_resolver.extract_channel_id("@demo")


@pytest.mark.asyncio
async def test_extract_channel_id_handle_not_found() -> None:
    youtube = _youtube(lambda request: httpx.Response(200, json={"items": []}))

    with pytest.raises(ChannelResolutionError, match="not found"):
        await channel_resolver.extract_channel_id("@missing", youtube=youtube)


@pytest.mark.asyncio
async def test_extract_channel_id_handle_http_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(ChannelResolutionError, match="Unable to contact YouTube Data API"):
        await channel_resolver.extract_channel_id("@demo", youtube=_youtube(handler))


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["", "not a channel", "https://www.youtube.com/watch?v=abcdefghijk"])
async def test_extract_channel_id_rejects_unsupported_input(raw: str) -> None:
    with pytest.raises(ChannelResolutionError):
        await channel_resolver.extract_channel_id(raw)
