import logging
from typing import Callable, FrozenSet, List, Optional

import pytest

from subtitlesync.models import MediaReference, Segment
from subtitlesync.providers.base import Capability, ProviderAdapter, ProviderKind, ProviderSettings

FAKE_WAV = b"RIFF\x24\x00\x00\x00WAVEfmt "


class FakeAdapter(ProviderAdapter):
    """In-memory adapter. Each hook pops the next scripted answer or raises it."""

    kind = ProviderKind.OPENAI

    def __init__(self, capabilities=(Capability.TIMESTAMPED, Capability.WHOLE_TEXT, Capability.GENERATE_TEXT),
                 segments: Optional[List] = None, texts: Optional[List] = None,
                 generate: Optional[Callable[[str], str]] = None, model: str = "fake-model"):
        super().__init__(ProviderSettings(kind=self.kind), model)
        self._capabilities = frozenset(capabilities)
        self.segments = list(segments or [])
        self.texts = list(texts or [])
        self.generate = generate
        self.calls = []

    def capabilities(self) -> FrozenSet[Capability]:
        return self._capabilities

    @staticmethod
    def _next(answers: List):
        answer = answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def _transcribe_timestamped(self, audio_bytes, language, mime_type):
        self.calls.append(("timestamped", language))
        return self._next(self.segments)

    async def _transcribe_whole_text(self, audio_bytes, language, prompt, mime_type):
        self.calls.append(("whole-text", language, prompt))
        return self._next(self.texts)

    async def _generate_text(self, prompt, temperature):
        self.calls.append(("generate", prompt, temperature))
        return self.generate(prompt)


@pytest.fixture
def make_media():
    """Builds a MediaReference whose reader records every requested window."""
    def _make(duration: float, name: str = "clip.mp4"):
        reads = []

        def reader(start, end):
            reads.append((start, end))
            return FAKE_WAV

        media = MediaReference(name=name, kind="video", duration=duration, reader=reader)
        return media, reads
    return _make


@pytest.fixture
def segments():
    def _make(*triples):
        return [Segment(start_time=s, end_time=e, text=t) for s, e, t in triples]
    return _make


@pytest.fixture
def restore_root_logging():
    """The CLI reconfigures the root logger; put the test runner's handlers back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def make_adapter():
    return FakeAdapter
