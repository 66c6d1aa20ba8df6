import httpx
import pytest

from upnext_engine import InvalidInput
from upnext_queue_api.intake import MetadataFetcher, SubmissionIntake, extract_video_id


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ&t=42",
        "http://m.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://music.youtube.com/watch?v=dQw4w9WgXcQ&list=RD",
        "www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://youtu.be/dQw4w9WgXcQ?si=abc",
        "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "  https://youtu.be/dQw4w9WgXcQ  ",
    ],
)
def test_extract_video_id(url):
    assert extract_video_id(url) == "dQw4w9WgXcQ"


@pytest.mark.parametrize(
    "url",
    [
        "",
        "https://vimeo.com/123456",
        "https://www.youtube.com/watch",
        "https://www.youtube.com/watch?v=short",
        "https://www.youtube.com/channel/UCabcdefghijk",
        "ftp://youtu.be/dQw4w9WgXcQ",
        "https://notyoutube.com/watch?v=dQw4w9WgXcQ",
        "http://[::1/watch?v=dQw4w9WgXcQ",
    ],
)
def test_rejects_non_youtube_urls(url):
    with pytest.raises(InvalidInput):
        extract_video_id(url)


def _fetcher(handler) -> MetadataFetcher:
    fetcher = MetadataFetcher()
    fetcher._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return fetcher


@pytest.mark.asyncio
async def test_fetch_title_from_oembed():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["url"] == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        return httpx.Response(200, json={"title": "Never Gonna Give You Up", "author_name": "Rick Astley"})

    fetcher = _fetcher(handler)
    metadata = await fetcher.fetch("dQw4w9WgXcQ")

    assert metadata.title == "Never Gonna Give You Up"
    assert metadata.small_img == "https://i.ytimg.com/vi/dQw4w9WgXcQ/mqdefault.jpg"
    assert metadata.big_img == "https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
    await fetcher.close()


@pytest.mark.asyncio
async def test_fetch_falls_back_on_error_status():
    fetcher = _fetcher(lambda request: httpx.Response(404))
    metadata = await fetcher.fetch("dQw4w9WgXcQ")
    assert metadata.title == "YouTube: dQw4w9WgXcQ"
    assert "dQw4w9WgXcQ" in metadata.big_img
    await fetcher.close()


@pytest.mark.asyncio
async def test_fetch_falls_back_on_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    fetcher = _fetcher(handler)
    assert (await fetcher.fetch("dQw4w9WgXcQ")).title == "YouTube: dQw4w9WgXcQ"
    await fetcher.close()


@pytest.mark.asyncio
async def test_intake_normalizes_submission():
    intake = SubmissionIntake(MetadataFetcher(enabled=False))
    submission = await intake.normalize(" https://youtu.be/dQw4w9WgXcQ ")
    assert submission.url == "https://youtu.be/dQw4w9WgXcQ"
    assert submission.extracted_id == "dQw4w9WgXcQ"
    assert submission.metadata.title == "YouTube: dQw4w9WgXcQ"
