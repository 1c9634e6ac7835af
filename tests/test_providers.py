import asyncio
from types import SimpleNamespace

import pytest

from subtitlesync.exceptions import (
    CapabilityUnsupportedError,
    EmptyResultWarning,
    ProviderError,
    ValidationError,
)
from subtitlesync.models import TranscriptionRequest, TranscriptionTask
from subtitlesync.providers.base import Capability, ProviderKind, ProviderSettings
from subtitlesync.providers.google_adapter import GoogleAIAdapter
from subtitlesync.providers.openai_adapter import AvalAIAdapter, GroqAdapter, OpenAIAdapter
from subtitlesync.providers.registry import create_adapter

FAKE_WAV = b"RIFF\x24\x00\x00\x00WAVEfmt "


def _openai_client(transcription=None, chat_content=None, error=None):
    calls = []

    async def create_transcription(**kwargs):
        calls.append(("transcription", kwargs))
        if error:
            raise error
        return transcription

    async def create_chat(**kwargs):
        calls.append(("chat", kwargs))
        if error:
            raise error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=chat_content))])

    client = SimpleNamespace(
        audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create_transcription)),
        chat=SimpleNamespace(completions=SimpleNamespace(create=create_chat)),
    )
    return client, calls


def _google_client(text):
    calls = []

    async def generate_content(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(text=text)

    return SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content))), calls


def test_openai_capabilities_depend_on_model():
    settings = ProviderSettings(kind="openai", api_key="k")
    client, _ = _openai_client()
    assert OpenAIAdapter(settings, "whisper-1", client=client).capabilities() == {
        Capability.TIMESTAMPED, Capability.WHOLE_TEXT}
    assert OpenAIAdapter(settings, "gpt-4o-transcribe", client=client).capabilities() == {Capability.WHOLE_TEXT}
    assert OpenAIAdapter(settings, "gpt-4.1-mini", client=client).capabilities() == {Capability.GENERATE_TEXT}


def test_openai_timestamped_request_and_normalization():
    response = SimpleNamespace(segments=[
        {"start": 0.0, "end": 1.5, "text": "  Hello "},
        {"start": 1.5, "end": 2.0, "text": "   "},
        {"start": None, "end": 3.0, "text": "incomplete"},
        SimpleNamespace(start=2.0, end=3.25, text="world"),
    ])
    client, calls = _openai_client(transcription=response)
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "whisper-1", client=client)

    segments = asyncio.run(adapter.transcribe_timestamped(FAKE_WAV, "auto-detect"))

    assert [(s.start_time, s.end_time, s.text) for s in segments] == [(0.0, 1.5, "Hello"), (2.0, 3.25, "world")]
    kwargs = calls[0][1]
    assert kwargs["response_format"] == "verbose_json"
    assert kwargs["timestamp_granularities"] == ["segment"]
    assert kwargs["model"] == "whisper-1"
    assert "language" not in kwargs
    assert kwargs["file"][1] == FAKE_WAV


def test_openai_whole_text_passes_language_and_prompt():
    client, calls = _openai_client(transcription="  some words \n")
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "whisper-1", client=client)

    text = asyncio.run(adapter.transcribe_whole_text(FAKE_WAV, "fa", "names: Sara"))

    assert text == "some words"
    kwargs = calls[0][1]
    assert (kwargs["response_format"], kwargs["language"], kwargs["prompt"]) == ("text", "fa", "names: Sara")


def test_chat_model_cannot_transcribe_before_any_call():
    client, calls = _openai_client(transcription="never")
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "gpt-4.1-mini", client=client)
    with pytest.raises(CapabilityUnsupportedError):
        asyncio.run(adapter.transcribe_whole_text(FAKE_WAV))
    assert calls == []


def test_sdk_failure_is_wrapped_in_provider_error():
    client, _ = _openai_client(error=RuntimeError("rate limited"))
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "gpt-4.1-mini", client=client)
    with pytest.raises(ProviderError) as excinfo:
        asyncio.run(adapter.generate_text("Translate this"))
    assert excinfo.value.provider == "openai"
    assert "rate limited" in excinfo.value.provider_message


def test_generate_text_uses_settings_temperature_by_default():
    client, calls = _openai_client(chat_content=" Bonjour ")
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k", temperature=0.3), "gpt-4.1-mini",
                            client=client)
    assert asyncio.run(adapter.generate_text("Say hi in French")) == "Bonjour"
    assert calls[0][1]["temperature"] == 0.3
    assert calls[0][1]["messages"] == [{"role": "user", "content": "Say hi in French"}]


def test_empty_whole_text_warns():
    client, _ = _openai_client(transcription="   ")
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "whisper-1", client=client)
    with pytest.warns(EmptyResultWarning):
        assert asyncio.run(adapter.transcribe_whole_text(FAKE_WAV)) == ""


def test_empty_audio_is_rejected():
    client, calls = _openai_client(transcription="x")
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "whisper-1", client=client)
    with pytest.raises(ValidationError):
        asyncio.run(adapter.transcribe_timestamped(b""))
    assert calls == []


def test_missing_api_key_is_rejected_at_construction():
    with pytest.raises(ValidationError):
        OpenAIAdapter(ProviderSettings(kind="openai"), "whisper-1")
    with pytest.raises(ValidationError):
        GoogleAIAdapter(ProviderSettings(kind="googleai"), "gemini-2.5-flash")


def test_missing_model_is_rejected():
    client, _ = _openai_client()
    with pytest.raises(ValidationError):
        OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "  ", client=client)


def test_groq_uses_json_and_only_whisper_transcribes():
    client, calls = _openai_client(transcription=SimpleNamespace(text="hola"))
    settings = ProviderSettings(kind="groq", api_key="k")
    whisper = GroqAdapter(settings, "whisper-large-v3", client=client)
    assert asyncio.run(whisper.transcribe_whole_text(FAKE_WAV, "es")) == "hola"
    assert calls[0][1]["response_format"] == "json"
    assert not GroqAdapter(settings, "llama-3.3-70b-versatile", client=client).supports(Capability.WHOLE_TEXT)


def test_avalai_default_base_url():
    adapter = AvalAIAdapter(ProviderSettings(kind="avalai", api_key="k"), "whisper-1")
    assert str(adapter.client.base_url).startswith("https://api.avalai.ir/v1")
    custom = AvalAIAdapter(ProviderSettings(kind="avalai", api_key="k", base_url="https://proxy.example/v1"),
                           "whisper-1")
    assert str(custom.client.base_url).startswith("https://proxy.example/v1")


def test_google_whole_text_sends_inline_audio():
    client, calls = _google_client(" transcribed ")
    adapter = GoogleAIAdapter(ProviderSettings(kind="googleai", api_key="k"), "gemini-2.5-flash", client=client)

    assert asyncio.run(adapter.transcribe_whole_text(FAKE_WAV, "de", "a podcast")) == "transcribed"
    contents = calls[0]["contents"]
    assert contents[0].inline_data.data == FAKE_WAV
    assert contents[0].inline_data.mime_type == "audio/wav"
    assert "Language hint: de" in contents[1] and "a podcast" in contents[1]
    assert not adapter.supports(Capability.TIMESTAMPED)


def test_google_generate_text():
    client, calls = _google_client("Hallo")
    adapter = GoogleAIAdapter(ProviderSettings(kind="googleai", api_key="k"), "gemini-2.5-flash", client=client)
    assert asyncio.run(adapter.generate_text("Say hello in German", temperature=0.2)) == "Hallo"
    assert calls[0]["config"].temperature == 0.2


def test_transcribe_dispatches_on_task():
    client, _ = _openai_client(transcription="plain text")
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "whisper-1", client=client)
    request = TranscriptionRequest(audio_bytes=FAKE_WAV, provider="openai", model="whisper-1",
                                   language="en", task=TranscriptionTask.WHOLE_TEXT)
    result = asyncio.run(adapter.transcribe(request))
    assert result.full_text == "plain text" and result.segments == [] and result.language == "en"


def test_transcribe_rejects_mismatched_request():
    client, _ = _openai_client(transcription="x")
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "whisper-1", client=client)
    with pytest.raises(ValidationError):
        asyncio.run(adapter.transcribe(TranscriptionRequest(audio_bytes=FAKE_WAV, provider="groq", model="whisper-1")))
    with pytest.raises(ValidationError):
        asyncio.run(adapter.transcribe(TranscriptionRequest(audio_bytes=b"", provider="openai", model="whisper-1")))


def test_registry_selects_adapter_once():
    client, _ = _openai_client()
    assert isinstance(create_adapter(ProviderSettings(kind="groq", api_key="k"), "whisper-large-v3", client=client),
                      GroqAdapter)
    assert create_adapter(ProviderSettings(kind=ProviderKind.AVALAI, api_key="k"), "whisper-1",
                          client=client).name == "avalai"
    with pytest.raises(ValidationError):
        ProviderSettings(kind="azure")


class _ClosableOpenAIClient:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.closed = False

    async def close(self):
        self.closed = True


def test_adapter_closes_the_client_it_created(monkeypatch):
    from subtitlesync.providers import openai_adapter

    monkeypatch.setattr(openai_adapter, "AsyncOpenAI", _ClosableOpenAIClient)

    async def use_adapter():
        async with GroqAdapter(ProviderSettings(kind="groq", api_key="k"), "whisper-large-v3") as adapter:
            return adapter

    adapter = asyncio.run(use_adapter())
    assert adapter.client.closed
    assert adapter.client.kwargs["base_url"] == "https://api.groq.com/openai/v1"


def test_injected_client_is_left_open():
    client = _ClosableOpenAIClient()
    adapter = OpenAIAdapter(ProviderSettings(kind="openai", api_key="k"), "whisper-1", client=client)
    asyncio.run(adapter.aclose())
    assert not client.closed


def test_google_adapter_closes_both_clients(monkeypatch):
    from subtitlesync.providers import google_adapter

    closed = []

    async def aclose():
        closed.append("aio")

    class FakeClient:
        def __init__(self, api_key):
            self.aio = SimpleNamespace(aclose=aclose)

        def close(self):
            closed.append("sync")

    monkeypatch.setattr(google_adapter.genai, "Client", FakeClient)
    adapter = GoogleAIAdapter(ProviderSettings(kind="googleai", api_key="k"), "gemini-2.5-flash")
    asyncio.run(adapter.aclose())
    assert closed == ["aio", "sync"]
