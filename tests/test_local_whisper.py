import asyncio
import os

import pytest

pytest.importorskip("whisper")

from subtitlesync.providers.base import Capability, ProviderSettings  # noqa: E402
from subtitlesync.providers.local_whisper import LocalWhisperAdapter  # noqa: E402


class FakeWhisperModel:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def transcribe(self, audio_path, **kwargs):
        with open(audio_path, "rb") as f:
            self.calls.append((audio_path, f.read(), kwargs))
        return self.result


def _adapter(result):
    # Skip __init__ so no checkpoint is downloaded.
    adapter = LocalWhisperAdapter.__new__(LocalWhisperAdapter)
    adapter.settings = ProviderSettings(kind="local", temperature=0.0)
    adapter.model = "base"
    adapter.device = "cpu"
    adapter.fp16 = False
    adapter.whisper_model = FakeWhisperModel(result)
    return adapter


def test_timestamped_segments_from_local_model():
    adapter = _adapter({"language": "en", "segments": [
        {"start": 0.0, "end": 1.0, "text": " Hi "},
        {"start": 1.0, "text": "no end"},
    ]})
    segments = asyncio.run(adapter.transcribe_timestamped(b"wav-bytes", "en"))
    assert [(s.start_time, s.end_time, s.text) for s in segments] == [(0.0, 1.0, "Hi")]

    audio_path, payload, kwargs = adapter.whisper_model.calls[0]
    assert payload == b"wav-bytes"
    assert kwargs["language"] == "en" and kwargs["fp16"] is False
    assert not os.path.exists(audio_path)


def test_whole_text_passes_prompt():
    adapter = _adapter({"text": " all of it "})
    assert asyncio.run(adapter.transcribe_whole_text(b"wav-bytes", "auto", "glossary")) == "all of it"
    assert adapter.whisper_model.calls[0][2]["initial_prompt"] == "glossary"
    assert adapter.whisper_model.calls[0][2]["language"] is None
    assert not adapter.supports(Capability.GENERATE_TEXT)
