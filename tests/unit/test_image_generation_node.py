import os

import pytest


def _image_response(*datas, text=None):
    parts = [{"inlineData": {"data": d, "mimeType": "image/png"}} for d in datas]
    if text:
        parts.insert(0, {"text": text})
    return {"candidates": [{"content": {"role": "model", "parts": parts}, "finishReason": "STOP"}]}


@pytest.mark.unit
@pytest.mark.parametrize("value,expected", [(1, 1), (8, 8), ("3", 3), (2.0, 2)])
def test_validate_image_count_accepts_integers_in_range(value, expected):
    from gemini_nodes.nodes.image_generation import validate_image_count

    assert validate_image_count(value) == expected


@pytest.mark.unit
@pytest.mark.parametrize("value", [0, 9, 2.5, "x", True, None])
def test_validate_image_count_rejects_everything_else(value):
    from gemini_nodes.core.errors import ValidationError
    from gemini_nodes.nodes.image_generation import validate_image_count

    with pytest.raises(ValidationError) as exc_info:
        validate_image_count(value)

    assert exc_info.value.code == "INVALID_IMAGE_COUNT"


@pytest.mark.unit
def test_aspect_ratio_set():
    from gemini_nodes.core.errors import ValidationError
    from gemini_nodes.nodes.image_generation import ASPECT_RATIOS, validate_aspect_ratio

    for ratio in ASPECT_RATIOS:
        assert validate_aspect_ratio(ratio) == ratio
    with pytest.raises(ValidationError):
        validate_aspect_ratio("5:5")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_aspect_ratio_makes_no_call(make_node, fake_client_class, invoke):
    from gemini_nodes.nodes.image_generation import ImageGenerationNode

    client = fake_client_class(responses=[_image_response("QUJD")])
    node = make_node(ImageGenerationNode, {}, client)

    sends, done_calls = await invoke(node, {"payload": "a cat", "aspectRatio": "5:5"})

    assert client.calls == []
    assert sends[0][0] is None
    assert sends[0][1]["error"]["kind"] == "ValidationError"
    assert sends[0][1]["error"]["code"] == "INVALID_ASPECT_RATIO"
    assert done_calls == [None]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_image_count_from_message_makes_no_call(make_node, fake_client_class, invoke):
    from gemini_nodes.nodes.image_generation import ImageGenerationNode

    client = fake_client_class(responses=[_image_response("QUJD")])
    node = make_node(ImageGenerationNode, {}, client)

    sends, _ = await invoke(node, {"payload": "a cat", "numberOfImages": 9})

    assert client.calls == []
    assert sends[0][1]["error"]["code"] == "INVALID_IMAGE_COUNT"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_single_image_is_unwrapped(make_node, fake_client_class, invoke):
    from gemini_nodes.nodes.image_generation import ImageGenerationNode

    client = fake_client_class(responses=[_image_response("QUJD", text="here it is")])
    node = make_node(ImageGenerationNode, {"aspectRatio": "16:9", "responseModalities": "both"}, client)

    sends, _ = await invoke(node, {"payload": "a cat"})

    document = client.calls[0]
    assert document["model"] == "gemini-2.5-flash-image-preview"
    assert document["config"] == {
        "responseModalities": ["IMAGE", "TEXT"],
        "imageConfig": {"aspectRatio": "16:9"},
    }
    assert document["contents"][0]["parts"] == [{"text": "a cat"}]
    out = sends[0][0]
    assert out["payload"] == "QUJD"
    assert out["imageCount"] == 1
    assert out["aspectRatio"] == "16:9"
    assert out["text"] == "here it is"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_input_images_switch_to_editing(make_node, fake_client_class, invoke, host):
    from gemini_nodes.nodes.image_generation import ImageGenerationNode

    client = fake_client_class(responses=[_image_response("QUJD")])
    node = make_node(ImageGenerationNode, {"outputFormat": "url"}, client)

    sends, _ = await invoke(
        node, {"payload": "make it blue", "inputImages": ["data:image/png;base64,RUZH"]}
    )

    assert client.calls[0]["contents"][0]["parts"] == [
        {"inlineData": {"data": "RUZH", "mimeType": "image/png"}},
        {"text": "make it blue"},
    ]
    assert any("editing" in s.get("text", "") for s in host.status_history)
    assert sends[0][0]["payload"] == "data:image/png;base64,QUJD"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_file_output_writes_every_image(make_node, fake_client_class, invoke, tmp_path):
    from gemini_nodes.nodes.image_generation import ImageGenerationNode

    client = fake_client_class(responses=[_image_response("QUJD", "REVG")])
    node = make_node(ImageGenerationNode, {"outputFormat": "file"}, client)

    sends, _ = await invoke(node, {"payload": "two cats"})

    paths = sends[0][0]["payload"]
    assert isinstance(paths, list) and len(paths) == 2
    assert all(os.path.dirname(p) == str(tmp_path) for p in paths)
    with open(paths[0], "rb") as fh:
        assert fh.read() == b"ABC"
    with open(paths[1], "rb") as fh:
        assert fh.read() == b"DEF"
    assert sends[0][0]["outputFormat"] == "file"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_response_without_images_is_empty_result(make_node, fake_client_class, make_text_response, invoke):
    from gemini_nodes.nodes.image_generation import ImageGenerationNode

    client = fake_client_class(responses=[make_text_response("I cannot draw that")])
    node = make_node(ImageGenerationNode, {}, client)

    sends, _ = await invoke(node, {"payload": "a cat"})

    assert sends[0][1]["error"]["kind"] == "EmptyResultError"
    assert sends[0][1]["error"]["code"] == "NO_IMAGES"
