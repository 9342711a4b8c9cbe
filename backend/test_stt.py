import asyncio
import base64

import pytest

import stt
from stt import MIN_PCM_BYTES, decode_pcm_chunks, transcribe_answer, transcribe_into
from transcript import Fragment, TranscriptAccumulator


def _chunk(size: int) -> str:
    return base64.b64encode(b"\x00" * size).decode()


@pytest.fixture
def recognizer(monkeypatch):
    """Replaces the Speech-to-Text call; records what it was asked to recognize."""
    calls = []
    reply = {"text": "a cache keeps hot data close"}

    def fake_recognize(pcm, project_id, model, sample_rate):
        calls.append({"bytes": len(pcm), "project": project_id, "model": model, "rate": sample_rate})
        if isinstance(reply["text"], Exception):
            raise reply["text"]
        return reply["text"]

    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "test-project")
    monkeypatch.setattr(stt, "recognize_pcm", fake_recognize)
    return {"calls": calls, "reply": reply}


def test_decode_joins_chunks():
    assert decode_pcm_chunks([_chunk(4), _chunk(6)]) == b"\x00" * 10


def test_missing_project_yields_nothing(monkeypatch):
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
    assert asyncio.run(transcribe_answer([_chunk(32000)])) is None


def test_no_chunks_yields_nothing(recognizer):
    assert asyncio.run(transcribe_answer([])) is None
    assert recognizer["calls"] == []


def test_short_buffer_is_skipped(recognizer):
    assert asyncio.run(transcribe_answer([_chunk(MIN_PCM_BYTES - 2)])) is None
    assert recognizer["calls"] == []


def test_invalid_base64_yields_nothing(recognizer):
    assert asyncio.run(transcribe_answer(["not base64!"])) is None


def test_recognized_speech_becomes_final_fragment(recognizer, monkeypatch):
    monkeypatch.setenv("STT_MODEL", "chirp")
    fragment = asyncio.run(transcribe_answer([_chunk(16000), _chunk(16000)]))
    assert fragment == Fragment(text="a cache keeps hot data close", is_final=True)
    assert recognizer["calls"] == [{"bytes": 32000, "project": "test-project", "model": "chirp", "rate": 16000}]


def test_silence_and_recognizer_errors_yield_nothing(recognizer):
    recognizer["reply"]["text"] = ""
    assert asyncio.run(transcribe_answer([_chunk(32000)])) is None

    recognizer["reply"]["text"] = RuntimeError("quota exceeded")
    assert asyncio.run(transcribe_answer([_chunk(32000)])) is None


def test_transcription_is_delivered_to_the_sink(recognizer):
    acc = TranscriptAccumulator()
    acc.push(Fragment("I think", True))

    asyncio.run(transcribe_into(acc.push, [_chunk(32000)]))
    assert acc.text == "I think a cache keeps hot data close"

    recognizer["reply"]["text"] = ""
    assert asyncio.run(transcribe_into(acc.push, [_chunk(32000)])) is None
    assert acc.text == "I think a cache keeps hot data close"
