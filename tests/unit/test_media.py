import asyncio
import base64
from unittest.mock import MagicMock, patch

import pytest
import requests


@pytest.mark.unit
def test_guess_mime_type_ignores_query_and_falls_back():
    from gemini_nodes.media.mime import (
        AUDIO_FALLBACK,
        AUDIO_MIME_TYPES,
        IMAGE_FALLBACK,
        IMAGE_MIME_TYPES,
        base_mime_type,
        guess_mime_type,
    )

    assert guess_mime_type("https://x.test/cat.PNG?size=big", IMAGE_MIME_TYPES, IMAGE_FALLBACK) == "image/png"
    assert guess_mime_type("/tmp/photo", IMAGE_MIME_TYPES, IMAGE_FALLBACK) == "image/jpeg"
    assert guess_mime_type("song.flac", AUDIO_MIME_TYPES, AUDIO_FALLBACK) == "audio/flac"
    assert base_mime_type("audio/L16; rate=24000") == "audio/l16"


@pytest.mark.unit
def test_classify_media_shapes():
    from gemini_nodes.media.mime import IMAGE_FALLBACK, IMAGE_MIME_TYPES
    from gemini_nodes.media.sources import (
        Base64Source,
        BytesSource,
        DataUrlSource,
        FileSource,
        InlineObjectSource,
        PlainString,
        UrlSource,
        classify_media,
    )

    def classify(value, **kwargs):
        return classify_media(value, default_mime=IMAGE_FALLBACK, mime_table=IMAGE_MIME_TYPES, **kwargs)

    assert classify(b"\x89PNG") == BytesSource(raw=b"\x89PNG", mime_type="image/jpeg")
    assert classify("data:image/png;base64,AAAA") == DataUrlSource(data="AAAA", mime_type="image/png")
    assert classify("https://x.test/a.webp") == UrlSource(url="https://x.test/a.webp", mime_type="image/webp")
    assert classify("QUJD") == Base64Source(data="QUJD", mime_type="image/jpeg")
    assert classify("/tmp/a.gif", plain_string=PlainString.FILE) == FileSource(
        path="/tmp/a.gif", mime_type="image/gif"
    )
    assert classify({"data": "data:image/png;base64,CCCC", "mimeType": "image/png"}) == InlineObjectSource(
        data="CCCC", mime_type="image/png"
    )


@pytest.mark.unit
@pytest.mark.parametrize("value", [42, {"data": "AAAA"}, "   ", ["a"]])
def test_classify_media_rejects_unknown_shapes(value):
    from gemini_nodes.core.errors import ValidationError
    from gemini_nodes.media.mime import IMAGE_FALLBACK, IMAGE_MIME_TYPES
    from gemini_nodes.media.sources import classify_media

    with pytest.raises(ValidationError):
        classify_media(value, default_mime=IMAGE_FALLBACK, mime_table=IMAGE_MIME_TYPES)


@pytest.mark.unit
@pytest.mark.parametrize(
    "value",
    [
        "hello world, not media!",
        {"data": "not base64 at all", "mimeType": "image/png"},
        "data:image/png;base64,???",
    ],
)
def test_classify_media_rejects_text_that_is_not_base64(value):
    from gemini_nodes.core.errors import ValidationError
    from gemini_nodes.media.mime import IMAGE_FALLBACK, IMAGE_MIME_TYPES
    from gemini_nodes.media.sources import classify_media

    with pytest.raises(ValidationError) as exc_info:
        classify_media(value, default_mime=IMAGE_FALLBACK, mime_table=IMAGE_MIME_TYPES)

    assert exc_info.value.code == "INVALID_BASE64"


@pytest.mark.unit
def test_classify_media_drops_whitespace_in_base64():
    from gemini_nodes.media.sources import Base64Source, classify_media

    source = classify_media("QUJD\nREVG", default_mime="image/png", mime_table={})

    assert source == Base64Source(data="QUJDREVG", mime_type="image/png")


@pytest.mark.unit
def test_malformed_data_url_is_rejected():
    from gemini_nodes.core.errors import ValidationError
    from gemini_nodes.media.sources import parse_data_url

    with pytest.raises(ValidationError) as exc_info:
        parse_data_url("data:image/png,AAAA")

    assert exc_info.value.code == "INVALID_DATA_URL"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_loader_reads_files_and_wraps_errors(tmp_path):
    from gemini_nodes.core.errors import MediaAcquisitionError
    from gemini_nodes.media.loader import MediaLoader
    from gemini_nodes.media.sources import FileSource

    image = tmp_path / "cat.png"
    image.write_bytes(b"png-bytes")
    loader = MediaLoader()

    part = await loader.acquire(FileSource(str(image), "image/png"))

    assert base64.b64decode(part.data) == b"png-bytes"
    assert part.mime_type == "image/png"

    missing = str(tmp_path / "missing.png")
    with pytest.raises(MediaAcquisitionError) as exc_info:
        await loader.acquire(FileSource(missing, "image/png"))
    assert exc_info.value.code == "FILE_READ_ERROR"
    assert missing in exc_info.value.message


@pytest.mark.unit
@pytest.mark.asyncio
async def test_loader_fetch_success_and_http_error():
    from gemini_nodes.core.errors import MediaAcquisitionError
    from gemini_nodes.media.loader import MediaLoader

    ok = MagicMock(status_code=200, content=b"remote", reason="OK")
    not_found = MagicMock(status_code=404, content=b"", reason="Not Found")

    with patch("gemini_nodes.media.loader.requests.get", side_effect=[ok, not_found]) as mock_get:
        loader = MediaLoader(fetch_timeout=5)
        assert await loader.fetch("https://x.test/a.png") == b"remote"
        with pytest.raises(MediaAcquisitionError) as exc_info:
            await loader.fetch("https://x.test/missing.png")

    assert exc_info.value.code == "HTTP_404"
    assert "https://x.test/missing.png" in exc_info.value.message
    assert mock_get.call_args.kwargs["timeout"] == 5


@pytest.mark.unit
@pytest.mark.asyncio
async def test_loader_fetch_timeout():
    from gemini_nodes.core.errors import MediaAcquisitionError
    from gemini_nodes.media.loader import MediaLoader

    with patch("gemini_nodes.media.loader.requests.get", side_effect=requests.exceptions.Timeout()):
        with pytest.raises(MediaAcquisitionError) as exc_info:
            await MediaLoader().fetch("https://x.test/slow.png")

    assert exc_info.value.code == "FETCH_TIMEOUT"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_acquire_all_keeps_declared_order_when_fetches_finish_out_of_order():
    from gemini_nodes.media.loader import MediaLoader
    from gemini_nodes.media.sources import UrlSource

    completed: list[str] = []

    class SlowFirstLoader(MediaLoader):
        async def fetch(self, url: str) -> bytes:
            await asyncio.sleep(0.05 if url.endswith("a.png") else 0)
            completed.append(url)
            return url.encode()

    sources = [
        UrlSource("https://x.test/a.png", "image/png"),
        UrlSource("https://x.test/b.png", "image/png"),
    ]

    parts = await SlowFirstLoader().acquire_all(sources)

    assert completed == ["https://x.test/b.png", "https://x.test/a.png"]
    assert [base64.b64decode(p.data).decode() for p in parts] == [
        "https://x.test/a.png",
        "https://x.test/b.png",
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_write_file_and_mkdir(tmp_path):
    from gemini_nodes.media.loader import MediaLoader

    loader = MediaLoader()
    target_dir = tmp_path / "out" / "nested"

    await loader.mkdir(str(target_dir))
    await loader.write_file(str(target_dir / "a.txt"), "hello")
    await loader.write_file(str(target_dir / "b.bin"), b"\x00\x01")

    assert (target_dir / "a.txt").read_text(encoding="utf-8") == "hello"
    assert (target_dir / "b.bin").read_bytes() == b"\x00\x01"


@pytest.mark.unit
def test_count_media_and_part_round_trip():
    from gemini_nodes.media.parts import InlineMediaPart, TextPart, count_media, part_from_api

    parts = [
        InlineMediaPart("AAAA", "image/png"),
        InlineMediaPart("BBBB", "video/mp4"),
        InlineMediaPart("CCCC", "image/jpeg"),
        TextPart("describe"),
    ]

    assert count_media(parts) == {"image": 2, "video": 1}
    assert part_from_api(parts[0].to_api()) == parts[0]
    assert part_from_api({"text": "x"}) == TextPart("x")
