import base64
import struct

import pytest


def _candidate(parts, finish_reason="STOP", **extra):
    candidate = {"content": {"role": "model", "parts": parts}, "finishReason": finish_reason}
    candidate.update(extra)
    return candidate


@pytest.mark.unit
def test_zero_candidates_is_blocked():
    from gemini_nodes.core.results import Failure
    from gemini_nodes.genai.normalizer import normalize_text

    result = normalize_text({"candidates": []})

    assert isinstance(result, Failure)
    assert result.kind == "BlockedError"
    assert result.code == "NO_CANDIDATES"


@pytest.mark.unit
def test_non_stop_finish_reason_is_blocked_with_ratings():
    from gemini_nodes.genai.normalizer import normalize_text

    ratings = [{"category": "HARM_CATEGORY_HARASSMENT", "probability": "HIGH"}]
    result = normalize_text(
        {"candidates": [_candidate([{"text": "x"}], "SAFETY", safetyRatings=ratings)]}
    )

    assert result.kind == "BlockedError"
    assert result.code == "FINISH_SAFETY"
    assert "SAFETY" in result.message
    assert "HARM_CATEGORY_HARASSMENT" in result.message


@pytest.mark.unit
def test_prompt_feedback_block_reason():
    from gemini_nodes.genai.normalizer import normalize_text

    result = normalize_text({"promptFeedback": {"blockReason": "OTHER"}})

    assert result.kind == "BlockedError"
    assert result.code == "BLOCKED_OTHER"


@pytest.mark.unit
def test_normalize_text_splits_thoughts_and_keeps_usage():
    from gemini_nodes.core.results import Success
    from gemini_nodes.genai.normalizer import normalize_text

    response = {
        "candidates": [_candidate([{"text": "thinking...", "thought": True}, {"text": "answer"}])],
        "usageMetadata": {"totalTokenCount": 12},
    }

    result = normalize_text(response)

    assert isinstance(result, Success)
    assert result.payload == "answer"
    assert result.usage == {"totalTokenCount": 12}
    assert result.metadata == {"thoughts": "thinking..."}


@pytest.mark.unit
def test_normalize_text_without_text_is_empty_result():
    from gemini_nodes.genai.normalizer import normalize_text

    result = normalize_text({"candidates": [_candidate([])]})

    assert result.kind == "EmptyResultError"
    assert result.code == "NO_TEXT"


@pytest.mark.unit
def test_normalize_images_collects_every_inline_part():
    from gemini_nodes.genai.normalizer import normalize_images

    parts = [
        {"text": "here you go"},
        {"inlineData": {"data": "AAAA", "mimeType": "image/png"}},
        {"inlineData": {"data": "BBBB", "mimeType": "image/png"}},
    ]

    result = normalize_images({"candidates": [_candidate(parts)]})

    assert [image.data for image in result.payload] == ["AAAA", "BBBB"]
    assert result.metadata == {"text": "here you go"}


@pytest.mark.unit
def test_normalize_images_without_images_fails():
    from gemini_nodes.genai.normalizer import normalize_images

    result = normalize_images({"candidates": [_candidate([{"text": "sorry"}])]})

    assert result.kind == "EmptyResultError"
    assert result.code == "NO_IMAGES"


@pytest.mark.unit
def test_l16_audio_is_repackaged_as_wav():
    from gemini_nodes.genai.normalizer import normalize_audio

    pcm = bytes(range(256)) * 4
    response = {
        "candidates": [
            _candidate(
                [{"inlineData": {"data": base64.b64encode(pcm).decode(), "mimeType": "audio/L16;rate=16000"}}]
            )
        ]
    }

    result = normalize_audio(response)

    wav = base64.b64decode(result.payload.data)
    assert result.payload.mime_type == "audio/wav"
    assert len(wav) == 44 + len(pcm)
    assert wav[44:] == pcm
    (riff, riff_size, wave, fmt, fmt_size, audio_format, channels, rate, byte_rate, block_align, bits, data, data_len) = (
        struct.unpack("<4sI4s4sIHHIIHH4sI", wav[:44])
    )
    assert (riff, wave, fmt, data) == (b"RIFF", b"WAVE", b"fmt ", b"data")
    assert riff_size == 36 + len(pcm)
    assert (fmt_size, audio_format, channels, rate, bits) == (16, 1, 1, 16000, 16)
    assert byte_rate == 32000
    assert block_align == 2
    assert data_len == len(pcm)
    assert result.metadata == {"sourceMimeType": "audio/L16;rate=16000"}


@pytest.mark.unit
def test_pcm_without_rate_defaults_to_24khz():
    from gemini_nodes.genai.audio import pcm_to_wav

    wav, mime = pcm_to_wav(b"\x00\x01", "audio/pcm")

    assert mime == "audio/wav"
    assert struct.unpack("<I", wav[24:28])[0] == 24000


@pytest.mark.unit
def test_non_pcm_audio_is_left_untouched():
    from gemini_nodes.genai.normalizer import normalize_audio

    response = {"candidates": [_candidate([{"inlineData": {"data": "SUQz", "mimeType": "audio/mpeg"}}])]}

    result = normalize_audio(response)

    assert result.payload.data == "SUQz"
    assert result.payload.mime_type == "audio/mpeg"


@pytest.mark.unit
def test_stream_chunk_text():
    from gemini_nodes.core.errors import BlockedError
    from gemini_nodes.genai.normalizer import stream_chunk_text

    assert stream_chunk_text({"candidates": [{"content": {"parts": [{"text": "Hel"}]}}]}) == "Hel"
    assert stream_chunk_text({"usageMetadata": {"totalTokenCount": 5}}) == ""
    with pytest.raises(BlockedError):
        stream_chunk_text({"candidates": [{"finishReason": "SAFETY"}]})
