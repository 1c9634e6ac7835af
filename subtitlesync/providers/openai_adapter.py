"""Adapters for OpenAI and the OpenAI-compatible AvalAI and Groq endpoints."""

import logging
import mimetypes
from typing import Any, FrozenSet, List, Optional

from openai import AsyncOpenAI

from ..models import Segment
from .base import Capability, ProviderAdapter, ProviderKind, ProviderSettings

logger = logging.getLogger(__name__)

DEFAULT_AVALAI_BASE_URL = "https://api.avalai.ir/v1"
DEFAULT_GROQ_BASE_URL = "https://api.groq.com/openai/v1"


def _field(obj: Any, name: str, default=None):
    """Reads a field from an SDK model or a plain dict (some compatible endpoints return dicts)."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class OpenAIAdapter(ProviderAdapter):
    """
    OpenAI audio transcription and chat completions via the official SDK.

    Segment timestamps (`verbose_json`) are only produced by Whisper models;
    the gpt-4o transcription models return plain text only. Chat models are
    used for text generation and cannot transcribe audio.
    """

    kind = ProviderKind.OPENAI
    default_base_url: Optional[str] = None
    whole_text_response_format = "text"

    def __init__(self, settings: ProviderSettings, model: str, client: Optional[AsyncOpenAI] = None):
        super().__init__(settings, model)
        # Injected clients belong to the caller and are left open.
        self._owns_client = client is None
        if client is None:
            client = AsyncOpenAI(
                api_key=self._require_api_key(),
                base_url=settings.base_url or self.default_base_url,
            )
        self.client = client

    async def aclose(self) -> None:
        if self._owns_client:
            logger.debug(f"Closing {self.name} client for {self.model}")
            await self.client.close()

    def is_whisper_model(self) -> bool:
        return "whisper" in self.model.lower()

    def is_transcription_model(self) -> bool:
        return self.is_whisper_model() or self.model.lower().endswith("-transcribe")

    def capabilities(self) -> FrozenSet[Capability]:
        if self.is_whisper_model():
            return frozenset({Capability.TIMESTAMPED, Capability.WHOLE_TEXT})
        if self.is_transcription_model():
            return frozenset({Capability.WHOLE_TEXT})
        return frozenset({Capability.GENERATE_TEXT})

    def _audio_file(self, audio_bytes: bytes, mime_type: str):
        extension = mimetypes.guess_extension(mime_type) or ".wav"
        return (f"audio_segment{extension}", audio_bytes, mime_type)

    def _transcription_kwargs(self, language: Optional[str], prompt: Optional[str] = None) -> dict:
        kwargs = {"temperature": self.settings.temperature}
        if language:
            kwargs["language"] = language
        if prompt:
            kwargs["prompt"] = prompt
        return kwargs

    async def _transcribe_timestamped(self, audio_bytes: bytes, language: Optional[str],
                                      mime_type: str) -> List[Segment]:
        response = await self.client.audio.transcriptions.create(
            file=self._audio_file(audio_bytes, mime_type),
            model=self.model,
            response_format="verbose_json",
            timestamp_granularities=["segment"],
            **self._transcription_kwargs(language),
        )
        segments = _field(response, "segments") or []
        logger.debug(f"{self.name} returned {len(segments)} segments.")
        result = []
        for s in segments:
            start, end = _field(s, "start"), _field(s, "end")
            if start is None or end is None:
                logger.warning(f"Skipping incomplete segment data: {s}")
                continue
            result.append(Segment(start_time=float(start), end_time=float(end), text=_field(s, "text", "") or ""))
        return result

    async def _transcribe_whole_text(self, audio_bytes: bytes, language: Optional[str],
                                     prompt: Optional[str], mime_type: str) -> str:
        response = await self.client.audio.transcriptions.create(
            file=self._audio_file(audio_bytes, mime_type),
            model=self.model,
            response_format=self.whole_text_response_format,
            **self._transcription_kwargs(language, prompt),
        )
        if isinstance(response, str):
            return response
        return _field(response, "text", "") or ""

    async def _generate_text(self, prompt: str, temperature: float) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class AvalAIAdapter(OpenAIAdapter):
    """AvalAI: OpenAI-compatible API with an overridable base URL."""

    kind = ProviderKind.AVALAI
    default_base_url = DEFAULT_AVALAI_BASE_URL


class GroqAdapter(OpenAIAdapter):
    """Groq's OpenAI-compatible endpoint. Only its Whisper models accept audio."""

    kind = ProviderKind.GROQ
    default_base_url = DEFAULT_GROQ_BASE_URL
    whole_text_response_format = "json"

    def capabilities(self) -> FrozenSet[Capability]:
        if self.is_whisper_model():
            return frozenset({Capability.TIMESTAMPED, Capability.WHOLE_TEXT})
        return frozenset({Capability.GENERATE_TEXT})
