import base64
import os
from datetime import datetime, timezone

import pytest


def _audio_response(data: bytes, mime_type: str):
    part = {"inlineData": {"data": base64.b64encode(data).decode(), "mimeType": mime_type}}
    return {"candidates": [{"content": {"role": "model", "parts": [part]}, "finishReason": "STOP"}]}


# ---------------------------------------------------------------------------
# audio understanding
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_audio_without_any_source_is_configuration_error(make_node, fake_client_class, make_text_response, invoke):
    from gemini_nodes.nodes.audio_understanding import AudioUnderstandingNode

    client = fake_client_class(responses=[make_text_response("unused")])
    node = make_node(AudioUnderstandingNode, {}, client)

    sends, done_calls = await invoke(node, {"payload": "what is this?"})

    assert client.calls == []
    assert sends[0][1]["error"]["code"] == "NO_AUDIO"
    assert sends[0][1]["error"]["kind"] == "ConfigurationError"
    assert done_calls == [None]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_audio_sources_are_sent_before_the_prompt(make_node, fake_client_class, make_text_response, invoke, tmp_path):
    from gemini_nodes.nodes.audio_understanding import AudioUnderstandingNode

    clip = tmp_path / "clip.mp3"
    clip.write_bytes(b"ID3")
    client = fake_client_class(responses=[make_text_response("birdsong")])
    node = make_node(AudioUnderstandingNode, {}, client)

    sends, _ = await invoke(
        node,
        {
            "audioData": "data:audio/ogg;base64,T2dn",
            "audioFiles": [str(clip), {"data": "UklG", "mimeType": "audio/wav"}],
        },
    )

    parts = client.calls[0]["contents"][0]["parts"]
    assert parts[:3] == [
        {"inlineData": {"data": "T2dn", "mimeType": "audio/ogg"}},
        {"inlineData": {"data": base64.b64encode(b"ID3").decode(), "mimeType": "audio/mp3"}},
        {"inlineData": {"data": "UklG", "mimeType": "audio/wav"}},
    ]
    assert parts[3]["text"].startswith("Please analyze this audio")
    out = sends[0][0]
    assert out["payload"] == "birdsong"
    assert out["audioCount"] == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_audio_bytes_use_the_message_mime_hint(make_node, fake_client_class, make_text_response, invoke):
    from gemini_nodes.nodes.audio_understanding import AudioUnderstandingNode

    client = fake_client_class(responses=[make_text_response("speech")])
    node = make_node(AudioUnderstandingNode, {"prompt": "transcribe", "promptType": "str"}, client)

    await invoke(node, {"audioData": b"\x00\x01", "audioMimeType": "audio/mp3"})

    parts = client.calls[0]["contents"][0]["parts"]
    assert parts == [
        {"inlineData": {"data": base64.b64encode(b"\x00\x01").decode(), "mimeType": "audio/mp3"}},
        {"text": "transcribe"},
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_audio_analysis_file_output(make_node, fake_client_class, make_text_response, invoke, host, tmp_path):
    from gemini_nodes.nodes.audio_understanding import AudioUnderstandingNode

    target = tmp_path / "analysis"
    client = fake_client_class(responses=[make_text_response("a dog barking")])
    node = make_node(
        AudioUnderstandingNode,
        {"outputFormat": "file", "saveDirectory": str(target)},
        client,
    )

    sends, _ = await invoke(node, {"audioData": "UklG"})

    out = sends[0][0]
    path = out["payload"]
    assert os.path.dirname(path) == str(target)
    assert os.path.basename(path).startswith("audio-analysis-")
    with open(path, encoding="utf-8") as fh:
        assert fh.read() == "a dog barking"
    assert out["savedToFile"] is True
    assert out["filePath"] == path


@pytest.mark.unit
def test_analysis_filename_is_timestamped():
    from gemini_nodes.nodes.audio_understanding import analysis_filename

    stamp = datetime(2025, 3, 4, 5, 6, 7, tzinfo=timezone.utc)

    assert analysis_filename(stamp) == "audio-analysis-2025-03-04T05-06-07.txt"


# ---------------------------------------------------------------------------
# speech generation
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_speech_pcm_response_becomes_wav(make_node, fake_client_class, invoke):
    from gemini_nodes.nodes.speech_generation import SpeechGenerationNode

    pcm = b"\x01\x02" * 100
    client = fake_client_class(responses=[_audio_response(pcm, "audio/L16;rate=16000")])
    node = make_node(SpeechGenerationNode, {"voiceName": "Kore"}, client)

    sends, _ = await invoke(node, {"payload": "Hello there"})

    document = client.calls[0]
    assert document["model"] == "gemini-2.5-flash-preview-tts"
    assert document["config"] == {
        "responseModalities": ["AUDIO"],
        "speechConfig": {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": "Kore"}}},
    }
    out = sends[0][0]
    wav = base64.b64decode(out["payload"])
    assert wav[:4] == b"RIFF"
    assert wav[8:12] == b"WAVE"
    assert len(wav) == 44 + len(pcm)
    assert out["audioMimeType"] == "audio/wav"
    assert out["voiceConfig"] == "Kore"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_speech_voice_can_be_overridden_per_message(make_node, fake_client_class, invoke):
    from gemini_nodes.nodes.speech_generation import SpeechGenerationNode

    client = fake_client_class(responses=[_audio_response(b"\x00\x00", "audio/L16;rate=24000")])
    node = make_node(SpeechGenerationNode, {"voiceName": "Kore"}, client)

    await invoke(node, {"payload": "hi", "voiceName": "Puck"})

    speech = client.calls[0]["config"]["speechConfig"]
    assert speech == {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": "Puck"}}}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_multi_speaker_request(make_node, fake_client_class, invoke):
    from gemini_nodes.nodes.speech_generation import SpeechGenerationNode

    client = fake_client_class(responses=[_audio_response(b"\x00\x00", "audio/L16;rate=24000")])
    config = {
        "speakerMode": "multi",
        "speaker1Name": "Joe",
        "speaker1Voice": "Kore",
        "speaker2Name": "Jane",
        "speaker2Voice": "Puck",
    }
    node = make_node(SpeechGenerationNode, config, client)

    sends, _ = await invoke(node, {"payload": "Joe: Hi\nJane: Hello"})

    document = client.calls[0]
    assert document["contents"][0]["parts"][0]["text"] == (
        "TTS the following conversation between Joe and Jane:\nJoe: Hi\nJane: Hello"
    )
    assert document["config"]["speechConfig"] == {
        "multiSpeakerVoiceConfig": {
            "speakerVoiceConfigs": [
                {"speaker": "Joe", "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": "Kore"}}},
                {"speaker": "Jane", "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": "Puck"}}},
            ]
        }
    }
    assert sends[0][0]["voiceConfig"] == "multi-speaker"
    assert sends[0][0]["speakerMode"] == "multi"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_speech_file_output_adds_extension(make_node, fake_client_class, invoke, tmp_path):
    from gemini_nodes.nodes.speech_generation import SpeechGenerationNode

    client = fake_client_class(responses=[_audio_response(b"\x00\x00", "audio/L16;rate=24000")])
    node = make_node(SpeechGenerationNode, {"outputFormat": "file", "filename": "greeting"}, client)

    sends, _ = await invoke(node, {"payload": "hi"})

    path = sends[0][0]["payload"]
    assert path == os.path.join(str(tmp_path), "greeting.wav")
    with open(path, "rb") as fh:
        assert fh.read(4) == b"RIFF"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_speech_buffer_output(make_node, fake_client_class, invoke):
    from gemini_nodes.nodes.speech_generation import SpeechGenerationNode

    client = fake_client_class(responses=[_audio_response(b"ID3", "audio/mpeg")])
    node = make_node(SpeechGenerationNode, {"outputFormat": "buffer"}, client)

    sends, _ = await invoke(node, {"payload": "hi"})

    assert sends[0][0]["payload"] == b"ID3"
    assert sends[0][0]["audioMimeType"] == "audio/mpeg"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_speech_without_text_fails(make_node, fake_client_class, invoke):
    from gemini_nodes.nodes.speech_generation import SpeechGenerationNode

    client = fake_client_class(responses=[_audio_response(b"\x00\x00", "audio/wav")])
    node = make_node(SpeechGenerationNode, {}, client)

    sends, _ = await invoke(node, {})

    assert client.calls == []
    assert sends[0][1]["error"]["code"] == "NO_TEXT"


@pytest.mark.unit
def test_speech_filename():
    from gemini_nodes.nodes.speech_generation import speech_filename

    assert speech_filename(None, "audio/wav", stamp_ms=123) == "gemini_speech_123.wav"
    assert speech_filename("intro", "audio/mpeg") == "intro.mp3"
    assert speech_filename("intro.WAV", "audio/mpeg") == "intro.WAV"
    assert speech_filename("intro.ogg", "audio/L16") == "intro.ogg.wav"
