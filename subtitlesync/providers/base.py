"""Common contract shared by every transcription / generation backend."""

import logging
import warnings
from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional

from ..exceptions import (
    CapabilityUnsupportedError,
    EmptyResultWarning,
    ProviderError,
    SubtitleSyncError,
    ValidationError,
)
from ..models import Segment, TranscriptionRequest, TranscriptionResult, TranscriptionTask
from ..utils import normalize_language

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "audio/wav"


class ProviderKind(str, Enum):
    OPENAI = "openai"
    AVALAI = "avalai"
    GROQ = "groq"
    GOOGLEAI = "googleai"
    LOCAL = "local"

    @classmethod
    def coerce(cls, value) -> "ProviderKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            choices = ", ".join(kind.value for kind in cls)
            raise ValidationError(f"Unknown provider '{value}'. Choose one of: {choices}.") from e


class Capability(str, Enum):
    TIMESTAMPED = "transcribe_timestamped"
    WHOLE_TEXT = "transcribe_whole_text"
    GENERATE_TEXT = "generate_text"


@dataclass
class ProviderSettings:
    """Per-request credentials and knobs. Nothing here is read from the environment."""
    kind: ProviderKind
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.0

    def __post_init__(self):
        self.kind = ProviderKind.coerce(self.kind)


class ProviderAdapter(ABC):
    """
    Base class for provider adapters.

    Subclasses declare what they can do through `capabilities()` and
    implement the matching `_transcribe_timestamped`, `_transcribe_whole_text`
    and `_generate_text` hooks. The public methods validate input, refuse
    unsupported tasks with CapabilityUnsupportedError, normalize the results
    and wrap any backend failure in ProviderError.
    """

    kind: ProviderKind

    def __init__(self, settings: ProviderSettings, model: str):
        if not model or not model.strip():
            raise ValidationError(f"A model identifier is required for provider '{self.kind.value}'.")
        self.settings = settings
        self.model = model.strip()

    @property
    def name(self) -> str:
        return self.kind.value

    def capabilities(self) -> FrozenSet[Capability]:
        return frozenset()

    def supports(self, capability: Capability) -> bool:
        return Capability(capability) in self.capabilities()

    def require(self, capability: Capability) -> None:
        if not self.supports(capability):
            raise CapabilityUnsupportedError(self.name, Capability(capability).value, self.model)

    def _require_api_key(self) -> str:
        if not self.settings.api_key:
            raise ValidationError(f"An API key is required for provider '{self.name}'.")
        return self.settings.api_key

    def _warn_empty(self, what: str) -> None:
        message = f"{self.name} ({self.model}) returned no {what}."
        logger.warning(message)
        warnings.warn(message, EmptyResultWarning, stacklevel=3)

    def _wrap(self, error: Exception) -> ProviderError:
        logger.error(f"{self.name} ({self.model}) call failed: {error}")
        return ProviderError(self.name, str(error) or error.__class__.__name__)

    async def aclose(self) -> None:
        """Releases the backend client. Adapters without one have nothing to close."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    # Public capability interface

    async def transcribe_timestamped(
        self, audio_bytes: bytes, language: Optional[str] = None, mime_type: str = DEFAULT_MIME_TYPE
    ) -> List[Segment]:
        self.require(Capability.TIMESTAMPED)
        if not audio_bytes:
            raise ValidationError("Cannot transcribe an empty audio payload.")
        language = normalize_language(language)
        logger.debug(f"{self.name} timestamped transcription: model={self.model}, "
                     f"language={language or 'auto-detect'}, bytes={len(audio_bytes)}")
        try:
            raw_segments = await self._transcribe_timestamped(audio_bytes, language, mime_type)
        except SubtitleSyncError:
            raise
        except Exception as e:
            raise self._wrap(e) from e

        segments = []
        for segment in raw_segments:
            text = (segment.text or "").strip()
            if text:
                segments.append(Segment(start_time=float(segment.start_time),
                                        end_time=float(segment.end_time), text=text))
        if not segments:
            self._warn_empty("segments")
        return segments

    async def transcribe_whole_text(
        self,
        audio_bytes: bytes,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
        mime_type: str = DEFAULT_MIME_TYPE,
    ) -> str:
        self.require(Capability.WHOLE_TEXT)
        if not audio_bytes:
            raise ValidationError("Cannot transcribe an empty audio payload.")
        language = normalize_language(language)
        logger.debug(f"{self.name} whole-text transcription: model={self.model}, "
                     f"language={language or 'auto-detect'}, bytes={len(audio_bytes)}")
        try:
            text = await self._transcribe_whole_text(audio_bytes, language, prompt, mime_type)
        except SubtitleSyncError:
            raise
        except Exception as e:
            raise self._wrap(e) from e

        text = (text or "").strip()
        if not text:
            self._warn_empty("text")
        return text

    async def generate_text(self, prompt: str, temperature: Optional[float] = None) -> str:
        self.require(Capability.GENERATE_TEXT)
        if not prompt or not prompt.strip():
            raise ValidationError("Cannot generate text from an empty prompt.")
        if temperature is None:
            temperature = self.settings.temperature
        try:
            text = await self._generate_text(prompt, temperature)
        except SubtitleSyncError:
            raise
        except Exception as e:
            raise self._wrap(e) from e
        return (text or "").strip()

    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        """Runs one TranscriptionRequest through the capability that matches its task."""
        request.validate()
        if ProviderKind.coerce(request.provider) is not self.kind:
            raise ValidationError(f"Request for provider '{request.provider}' sent to '{self.name}' adapter.")
        if request.model.strip() != self.model:
            raise ValidationError(f"Request for model '{request.model}' sent to adapter for '{self.model}'.")

        if TranscriptionTask(request.task) is TranscriptionTask.TIMESTAMPED:
            segments = await self.transcribe_timestamped(request.audio_bytes, request.language, request.mime_hint)
            full_text = " ".join(segment.text for segment in segments)
            return TranscriptionResult(segments=segments, full_text=full_text,
                                       language=normalize_language(request.language))
        text = await self.transcribe_whole_text(request.audio_bytes, request.language,
                                                request.prompt, request.mime_hint)
        return TranscriptionResult(full_text=text, language=normalize_language(request.language))

    # Backend hooks, only reached for declared capabilities

    async def _transcribe_timestamped(self, audio_bytes: bytes, language: Optional[str],
                                      mime_type: str) -> List[Segment]:
        raise NotImplementedError

    async def _transcribe_whole_text(self, audio_bytes: bytes, language: Optional[str],
                                     prompt: Optional[str], mime_type: str) -> str:
        raise NotImplementedError

    async def _generate_text(self, prompt: str, temperature: float) -> str:
        raise NotImplementedError


def transcription_prompt(language: Optional[str]) -> str:
    """Instruction used by chat-style models that accept inline audio."""
    return ("Transcribe the following audio precisely. Respond only with the transcribed text. "
            f"Language hint: {language or 'auto-detect'}.")
