from __future__ import annotations

import pytest

from app.errors import UpstreamShapeError
from app.services.normalizer import Emotion, Source, extract_emotion, normalize_chat, normalize_speech


def chat_body(text, attributions=None):
    candidate = {"content": {"role": "model", "parts": [{"text": text}]}}
    if attributions is not None:
        candidate["groundingMetadata"] = {"groundingAttributions": attributions}
    return {"candidates": [candidate], "usageMetadata": {"totalTokenCount": 12}}


def test_emotion_tag_is_extracted_and_stripped():
    result = normalize_chat(chat_body("[EMOTION: JOY] Hello"))

    assert result.emotion is Emotion.JOY
    assert result.clean_text == "Hello"
    assert result.sources == []
    assert result.has_image is False


def test_emotion_tag_is_case_insensitive():
    result = normalize_chat(chat_body("  [emotion: confusion]   I am not sure.  "))

    assert result.emotion is Emotion.CONFUSION
    assert result.clean_text == "I am not sure."


def test_untagged_text_is_neutral_and_unmodified():
    result = normalize_chat(chat_body("  Plain answer. "))

    assert result.emotion is Emotion.NEUTRAL
    assert result.clean_text == "  Plain answer. "


def test_extraction_is_idempotent():
    first = normalize_chat(chat_body("[EMOTION: INTEREST] Tell me more"))
    second = normalize_chat(chat_body(first.clean_text))

    assert second.emotion is Emotion.NEUTRAL
    assert second.clean_text == first.clean_text


def test_only_a_leading_tag_counts():
    emotion, text = extract_emotion("Well [EMOTION: JOY] hi")

    assert emotion is Emotion.NEUTRAL
    assert text == "Well [EMOTION: JOY] hi"


def test_unknown_tag_is_left_in_place():
    emotion, text = extract_emotion("[EMOTION: ANGER] grr")

    assert emotion is Emotion.NEUTRAL
    assert text == "[EMOTION: ANGER] grr"


def test_sources_keep_order_and_skip_incomplete_attributions():
    attributions = [
        {"web": {"uri": "https://a.example", "title": "A"}},
        {"web": {"uri": "", "title": "No uri"}},
        {"web": {"uri": "https://c.example"}},
        {"retrievedContext": {"uri": "x"}},
        {"web": {"uri": "https://b.example", "title": "B"}},
    ]

    result = normalize_chat(chat_body("[EMOTION: NEUTRAL] ok", attributions), has_image=True)

    assert result.sources == [
        Source(uri="https://a.example", title="A"),
        Source(uri="https://b.example", title="B"),
    ]
    assert result.has_image is True


def test_null_attribution_list_has_no_sources():
    body = chat_body("[EMOTION: JOY] Hi")
    body["candidates"][0]["groundingMetadata"] = {"groundingAttributions": None}

    result = normalize_chat(body)

    assert result.emotion is Emotion.JOY
    assert result.clean_text == "Hi"
    assert result.sources == []


def test_null_attribution_entries_are_skipped():
    attributions = [None, {"web": None}, {"web": {"uri": "https://a.example", "title": "A"}}]

    result = normalize_chat(chat_body("[EMOTION: INTEREST] ok", attributions))

    assert result.sources == [Source(uri="https://a.example", title="A")]


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"candidates": []},
        {"candidates": [{}]},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"inlineData": {"data": "x"}}]}}]},
        ["not", "an", "object"],
        None,
    ],
)
def test_chat_shape_errors(body):
    with pytest.raises(UpstreamShapeError):
        normalize_chat(body)


def test_speech_extracts_audio():
    body = {
        "candidates": [
            {"content": {"parts": [{"inlineData": {"mimeType": "audio/L16;rate=24000", "data": "AAAA"}}]}}
        ]
    }

    result = normalize_speech(body)

    assert result.audio_data == "AAAA"
    assert result.mime_type == "audio/L16;rate=24000"


@pytest.mark.parametrize(
    "part",
    [
        {"text": "no audio"},
        {"inlineData": {"mimeType": "audio/wav"}},
        {"inlineData": {"data": "AAAA"}},
        {"inlineData": {"mimeType": "", "data": "AAAA"}},
    ],
)
def test_speech_shape_errors(part):
    with pytest.raises(UpstreamShapeError, match="TTS failed to generate audio data"):
        normalize_speech({"candidates": [{"content": {"parts": [part]}}]})


def test_speech_without_candidates():
    with pytest.raises(UpstreamShapeError):
        normalize_speech({"candidates": []})
