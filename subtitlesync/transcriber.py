"""Turns a media file into timed subtitle entries through a provider adapter."""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .document import SubtitleDocument
from .exceptions import (
    CapabilityUnsupportedError,
    SubtitleSyncError,
    TranscriptionError,
    ValidationError,
)
from .models import (
    AudioChunk,
    MediaReference,
    ProgressStage,
    ProgressState,
    RefinementStats,
    Segment,
    SubtitleEntry,
    TranscriptionTask,
)
from .providers.base import Capability, ProviderAdapter

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_DURATION = 5 * 60
# Share of the overall progress scale given to transcription when refinement follows.
TRANSCRIPTION_SHARE_WITH_REFINEMENT = 50.0

ProgressCallback = Callable[[ProgressState], None]


def plan_chunks(total_duration: float, max_chunk_duration: float) -> List[AudioChunk]:
    """
    Splits [0, total_duration) into back-to-back chunks of at most
    max_chunk_duration seconds. The last chunk may be shorter.
    """
    if total_duration <= 0:
        raise ValidationError(f"Media duration must be positive, got {total_duration}.")
    if max_chunk_duration <= 0:
        raise ValidationError(f"Maximum chunk duration must be positive, got {max_chunk_duration}.")

    chunks: List[AudioChunk] = []
    for i in range(math.ceil(total_duration / max_chunk_duration)):
        start = round(i * max_chunk_duration, 3)
        end = round(min((i + 1) * max_chunk_duration, total_duration), 3)
        if end > start:
            chunks.append(AudioChunk(index=len(chunks), start_time=start, end_time=end))
    return chunks


@dataclass
class TranscriptionOptions:
    language: str = "auto-detect"
    task: TranscriptionTask = TranscriptionTask.TIMESTAMPED
    max_chunk_duration: float = DEFAULT_CHUNK_DURATION
    prompt: Optional[str] = None
    refine: bool = False


@dataclass
class TranscriptionOutcome:
    """
    Result of one run. Timestamped runs fill `entries`; whole-text runs fill
    `full_text` and keep each chunk's text in `chunk_texts`.
    """
    entries: List[SubtitleEntry] = field(default_factory=list)
    full_text: Optional[str] = None
    chunk_texts: List[Tuple[AudioChunk, str]] = field(default_factory=list)
    total_chunks: int = 0
    refinement: RefinementStats = field(default_factory=RefinementStats)


class TranscriptionOrchestrator:
    """
    Runs idle -> chunking -> transcribing -> [refining] -> complete | error.

    Chunks and refinement segments are processed strictly one after another,
    so merged timestamps stay in chunk order. Progress is one 0-100 scale for
    the whole run: transcription fills it alone, or its first half when
    refinement follows. The reported percentage never goes backwards.
    A failed chunk aborts the run; a failed refinement keeps the segment's
    first-pass text and is only counted.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        refinement_adapter: Optional[ProviderAdapter] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.adapter = adapter
        self.refinement_adapter = refinement_adapter or adapter
        self.progress_callback = progress_callback
        self.state = ProgressState(stage=ProgressStage.IDLE)
        self._transcription_share = 100.0

    def _emit(self, stage: ProgressStage, percentage: float = 0.0, message: str = "", **counters) -> None:
        percentage = max(round(percentage, 2), self.state.percentage)
        self.state = ProgressState(stage=stage, percentage=percentage, message=message, **counters)
        logger.debug(f"[{stage.value}] {self.state.percentage:.2f}% {message}")
        if self.progress_callback is not None:
            self.progress_callback(self.state)

    def _preflight(self, media: MediaReference, options: TranscriptionOptions) -> TranscriptionTask:
        task = TranscriptionTask(options.task)
        if media.duration is None or media.duration <= 0:
            raise ValidationError(f"Media '{media.name}' has no usable duration.")
        if options.max_chunk_duration <= 0:
            raise ValidationError("Maximum chunk duration must be positive.")
        if task is TranscriptionTask.TIMESTAMPED:
            self.adapter.require(Capability.TIMESTAMPED)
            if options.refine:
                self.refinement_adapter.require(Capability.WHOLE_TEXT)
        else:
            self.adapter.require(Capability.WHOLE_TEXT)
            if options.refine:
                logger.warning("Refinement only applies to timestamped runs; ignoring it for a whole-text run.")
        return task

    async def run(self, media: MediaReference, options: Optional[TranscriptionOptions] = None) -> TranscriptionOutcome:
        """
        Transcribes the whole media.

        Raises:
            ValidationError, CapabilityUnsupportedError: Before any network call.
            ProviderError: When a chunk fails. The run ends in the error stage.
            TranscriptionError: For any other unexpected failure.
        """
        options = options or TranscriptionOptions()
        task = self._preflight(media, options)
        outcome = TranscriptionOutcome()
        self.state = ProgressState(stage=ProgressStage.IDLE)
        refining = task is TranscriptionTask.TIMESTAMPED and options.refine
        self._transcription_share = TRANSCRIPTION_SHARE_WITH_REFINEMENT if refining else 100.0

        try:
            self._emit(ProgressStage.CHUNKING, 0, f"Splitting {media.duration:.1f}s into chunks of "
                                                 f"{options.max_chunk_duration:.0f}s")
            chunks = plan_chunks(media.duration, options.max_chunk_duration)
            outcome.total_chunks = len(chunks)
            logger.info(f"Transcribing '{media.name}' in {len(chunks)} chunk(s) with "
                        f"{self.adapter.name} ({self.adapter.model}), language={options.language}")
            self._emit(ProgressStage.CHUNKING, 0, f"{len(chunks)} chunk(s) planned", total_chunks=len(chunks))

            await self._transcribe_chunks(media, chunks, task, options, outcome)

            if task is TranscriptionTask.WHOLE_TEXT:
                outcome.full_text = " ".join(text for _, text in outcome.chunk_texts)
            elif options.refine and outcome.entries:
                outcome.entries = await self._refine(media, outcome.entries, options, outcome.refinement)
        except SubtitleSyncError as e:
            logger.error(f"Transcription of '{media.name}' failed: {e}")
            self._emit(ProgressStage.ERROR, self.state.percentage, str(e))
            raise
        except Exception as e:
            logger.critical(f"Unexpected error while transcribing '{media.name}': {e}", exc_info=True)
            self._emit(ProgressStage.ERROR, self.state.percentage, str(e))
            raise TranscriptionError(f"Transcription of '{media.name}' failed: {e}") from e

        produced = len(outcome.entries) if task is TranscriptionTask.TIMESTAMPED else len(outcome.chunk_texts)
        self._emit(ProgressStage.COMPLETE, 100, f"Transcription complete ({produced} result(s))",
                   current_chunk=outcome.total_chunks, total_chunks=outcome.total_chunks)
        return outcome

    async def _transcribe_chunks(self, media: MediaReference, chunks: List[AudioChunk], task: TranscriptionTask,
                                 options: TranscriptionOptions, outcome: TranscriptionOutcome) -> None:
        total = len(chunks)
        for chunk in chunks:
            position = chunk.index + 1
            self._emit(ProgressStage.TRANSCRIBING, chunk.index / total * self._transcription_share,
                       f"Transcribing chunk {position}/{total} ({chunk.start_time:.1f}s - {chunk.end_time:.1f}s)",
                       current_chunk=position, total_chunks=total)

            audio = media.read(chunk.start_time, chunk.end_time)
            if task is TranscriptionTask.TIMESTAMPED:
                segments = await self.adapter.transcribe_timestamped(audio, options.language, media.mime_type)
                outcome.entries.extend(self._offset_segments(segments, chunk))
                logger.info(f"Chunk {position}/{total}: {len(segments)} segment(s)")
            else:
                text = await self.adapter.transcribe_whole_text(audio, options.language, options.prompt,
                                                                media.mime_type)
                if text:
                    outcome.chunk_texts.append((chunk, text))
                logger.info(f"Chunk {position}/{total}: {len(text)} character(s)")

            self._emit(ProgressStage.TRANSCRIBING, position / total * self._transcription_share,
                       f"Chunk {position}/{total} done", current_chunk=position, total_chunks=total)

    @staticmethod
    def _offset_segments(segments: List[Segment], chunk: AudioChunk) -> List[SubtitleEntry]:
        """Moves chunk-local times onto the media timeline, clamped to the chunk's bounds."""
        entries = []
        for segment in sorted(segments, key=lambda s: s.start_time):
            start = min(max(round(chunk.start_time + segment.start_time, 3), chunk.start_time), chunk.end_time)
            end = min(max(round(chunk.start_time + segment.end_time, 3), start), chunk.end_time)
            entries.append(SubtitleEntry(start_time=start, end_time=end, text=segment.text))
        return entries

    async def _refine(self, media: MediaReference, entries: List[SubtitleEntry],
                      options: TranscriptionOptions, stats: RefinementStats) -> List[SubtitleEntry]:
        arena = {entry.id: entry for entry in entries}
        order = [entry.id for entry in entries]
        total = len(order)
        base = self._transcription_share
        span = 100.0 - base
        logger.info(f"Refining {total} segment(s) with {self.refinement_adapter.name} "
                    f"({self.refinement_adapter.model})")

        for j, entry_id in enumerate(order):
            entry = arena[entry_id]
            self._emit(ProgressStage.REFINING, base + j / total * span, f"Refining segment {j + 1}/{total}",
                       current_segment=j + 1, total_segments=total)
            try:
                if entry.duration <= 0:
                    raise ValidationError(f"Segment {entry_id} has no duration.")
                audio = media.read(entry.start_time, entry.end_time)
                text = await self.refinement_adapter.transcribe_whole_text(
                    audio, options.language, options.prompt, media.mime_type)
            except CapabilityUnsupportedError:
                raise
            except Exception as e:
                # A single segment never fails the run; its first-pass text stays.
                stats.failed_to_refine += 1
                logger.warning(f"Could not refine segment {j + 1}/{total} ({entry.start_time:.3f}s - "
                               f"{entry.end_time:.3f}s): {e}")
            else:
                if text:
                    arena[entry_id].text = text
                    stats.refined_successfully += 1
                else:
                    stats.failed_to_refine += 1
            stats.completed_segments += 1
            self._emit(ProgressStage.REFINING, base + (j + 1) / total * span, f"Segment {j + 1}/{total} done",
                       current_segment=j + 1, total_segments=total)

        logger.info(f"Refinement finished: {stats.refined_successfully} refined, "
                    f"{stats.failed_to_refine} kept original text.")
        return [arena[entry_id] for entry_id in order]

    async def regenerate_entry(self, document: SubtitleDocument, entry_id: str, media: MediaReference,
                               language: str = "auto-detect", prompt: Optional[str] = None) -> SubtitleEntry:
        """
        Re-transcribes one cue's time window and writes the text back.

        Provider errors propagate and leave the cue untouched; an empty
        result also keeps the old text.
        """
        entry = document.get_entry(entry_id)
        self.adapter.require(Capability.WHOLE_TEXT)
        if entry.duration <= 0:
            raise ValidationError(f"Cue {entry_id} has no duration to transcribe.")

        logger.info(f"Regenerating cue {entry_id} ({entry.start_time:.3f}s - {entry.end_time:.3f}s) "
                    f"with {self.adapter.name} ({self.adapter.model})")
        audio = media.read(entry.start_time, entry.end_time)
        text = await self.adapter.transcribe_whole_text(audio, language, prompt, media.mime_type)
        if not text:
            logger.warning(f"Regeneration of cue {entry_id} returned no text; keeping the existing text.")
            return entry
        return document.update_entry(entry_id, text=text)
