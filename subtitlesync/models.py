"""Data models for SubtitleSync."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .exceptions import ValidationError
from .utils import new_id


class SubtitleFormat(str, Enum):
    SRT = "srt"
    VTT = "vtt"

    @property
    def millisecond_separator(self) -> str:
        return "," if self is SubtitleFormat.SRT else "."

    @classmethod
    def coerce(cls, value) -> "SubtitleFormat":
        """Accepts an enum member or a case-insensitive name such as 'SRT' or '.vtt'."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().lstrip("."))
        except ValueError as e:
            raise ValidationError(f"Unsupported subtitle format: {value!r}. Use 'srt' or 'vtt'.") from e


class TranscriptionTask(str, Enum):
    TIMESTAMPED = "timestamped"
    WHOLE_TEXT = "whole-text"


class ProgressStage(str, Enum):
    IDLE = "idle"
    CHUNKING = "chunking"
    TRANSCRIBING = "transcribing"
    REFINING = "refining"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class SubtitleEntry:
    """One timed caption block."""
    start_time: float
    end_time: float
    text: str
    id: str = field(default_factory=lambda: new_id("cue"))

    def __post_init__(self):
        if self.start_time < 0 or self.end_time < 0:
            raise ValidationError(f"Cue times must be non-negative ({self.start_time} -> {self.end_time}).")
        if self.end_time < self.start_time:
            raise ValidationError(f"Cue end time {self.end_time} is before start time {self.start_time}.")

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class SubtitleTrack:
    """A named, ordered sequence of entries. Order is insertion order, not time order."""
    file_name: str
    format: SubtitleFormat = SubtitleFormat.SRT
    entries: List[SubtitleEntry] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("track"))


@dataclass
class Segment:
    """Represents a single timed chunk of text returned by a provider."""
    start_time: float
    end_time: float
    text: str


@dataclass
class TranscriptionResult:
    """Provider output: timed segments (timestamped task) or full text (whole-text task)."""
    segments: List[Segment] = field(default_factory=list)
    full_text: Optional[str] = None
    language: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.segments and not (self.full_text or "").strip()


@dataclass
class TranscriptionRequest:
    """Everything one provider call needs, minus credentials."""
    audio_bytes: bytes
    provider: str
    model: str
    mime_hint: str = "audio/wav"
    language: str = "auto-detect"
    task: TranscriptionTask = TranscriptionTask.TIMESTAMPED
    prompt: Optional[str] = None

    def validate(self) -> None:
        if not self.audio_bytes:
            raise ValidationError("Transcription request has no audio payload.")
        if not self.model or not self.model.strip():
            raise ValidationError("Transcription request is missing a model identifier.")
        if not self.provider:
            raise ValidationError("Transcription request is missing a provider.")
        if not self.mime_hint or "/" not in self.mime_hint:
            raise ValidationError(f"Invalid MIME type hint: {self.mime_hint!r}")


@dataclass
class MediaReference:
    """
    The core's view of an uploaded media file: a duration and a byte accessor.

    `reader(start, end)` must return a provider-compatible audio payload for
    the given time window.
    """
    name: str
    kind: str
    duration: float
    reader: Callable[[float, float], bytes]
    mime_type: str = "audio/wav"

    def read(self, start: float, end: float) -> bytes:
        return self.reader(start, end)


@dataclass
class AudioChunk:
    index: int
    start_time: float
    end_time: float

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class ProgressState:
    """Snapshot passed to the progress callback. Percentage covers the whole run (0-100)."""
    stage: ProgressStage
    percentage: float = 0.0
    current_chunk: int = 0
    total_chunks: int = 0
    current_segment: int = 0
    total_segments: int = 0
    message: str = ""


@dataclass
class RefinementStats:
    completed_segments: int = 0
    refined_successfully: int = 0
    failed_to_refine: int = 0


@dataclass
class TranslationStats:
    translated: int = 0
    skipped: int = 0
    kept_original: int = 0
