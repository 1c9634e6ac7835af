"""In-memory subtitle document: one track plus the editing operations on it."""

import logging
import os
from typing import Dict, Iterable, Iterator, List, Optional

from .exceptions import EntryNotFoundError, FileSystemError, ValidationError
from .models import SubtitleEntry, SubtitleFormat, SubtitleTrack
from .subtitle_formatter import get_formatter
from .subtitle_parser import detect_format, parse_subtitles

logger = logging.getLogger(__name__)

NEW_ENTRY_PLACEHOLDER = "New subtitle text..."
DEFAULT_CUE_DURATION = 2.0
NEW_CUE_GAP = 0.1
MIN_CUE_DURATION = 0.001


def _ms(value: float) -> float:
    return round(value, 3)


class SubtitleDocument:
    """
    Owns a SubtitleTrack. Entries are stored in an arena keyed by id with a
    separate order list, so lookups by id stay valid while other entries are
    added, removed or rewritten.
    """

    def __init__(self, track: SubtitleTrack):
        self.track_id = track.id
        self.file_name = track.file_name
        self.format = SubtitleFormat.coerce(track.format)
        self._entries: Dict[str, SubtitleEntry] = {}
        self._order: List[str] = []
        self.replace_entries(track.entries)

    @classmethod
    def from_text(cls, content: str, file_name: str, fmt=None) -> "SubtitleDocument":
        fmt = SubtitleFormat.coerce(fmt) if fmt is not None else detect_format(content, file_name)
        entries = parse_subtitles(content, fmt)
        logger.info(f"Loaded subtitle track '{file_name}' ({fmt.value.upper()}, {len(entries)} cues).")
        return cls(SubtitleTrack(file_name=file_name, format=fmt, entries=entries))

    @classmethod
    def load(cls, path: str, fmt=None) -> "SubtitleDocument":
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Subtitle file not found: {path}")
        try:
            with open(path, 'r', encoding='utf-8-sig') as f:
                content = f.read()
        except OSError as e:
            raise FileSystemError(f"Could not read subtitle file {path}: {e}") from e
        return cls.from_text(content, os.path.basename(path), fmt)

    # Queries

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[SubtitleEntry]:
        return (self._entries[entry_id] for entry_id in self._order)

    def __contains__(self, entry_id: str) -> bool:
        return entry_id in self._entries

    @property
    def entries(self) -> List[SubtitleEntry]:
        return list(self)

    @property
    def track(self) -> SubtitleTrack:
        return SubtitleTrack(file_name=self.file_name, format=self.format, entries=self.entries, id=self.track_id)

    def get_entry(self, entry_id: str) -> SubtitleEntry:
        try:
            return self._entries[entry_id]
        except KeyError:
            raise EntryNotFoundError(entry_id) from None

    # Mutations

    def replace_entries(self, entries: Iterable[SubtitleEntry]) -> None:
        """Swaps in a complete entry list at once, e.g. the result of a finished run."""
        arena: Dict[str, SubtitleEntry] = {}
        order: List[str] = []
        for entry in entries:
            if entry.id in arena:
                raise ValidationError(f"Duplicate subtitle entry id: {entry.id}")
            arena[entry.id] = entry
            order.append(entry.id)
        self._entries = arena
        self._order = order

    def add_entry(
        self,
        player_time: float = 0.0,
        media_duration: Optional[float] = None,
        text: str = NEW_ENTRY_PLACEHOLDER,
    ) -> SubtitleEntry:
        """
        Appends a placeholder cue right after the latest cue, or at the player
        position when the track is empty, clamped to the media length.

        Raises:
            ValidationError: If no room is left before the end of the media.
        """
        if self._order:
            start = max(entry.end_time for entry in self) + NEW_CUE_GAP
        else:
            start = player_time
        end = start + DEFAULT_CUE_DURATION

        if media_duration and media_duration > 0:
            start = min(max(0.0, start), media_duration)
            end = min(end, media_duration)
            if end - start < MIN_CUE_DURATION:
                start = max(0.0, media_duration - DEFAULT_CUE_DURATION)
                end = media_duration
        else:
            start = max(0.0, start)
            end = max(start + MIN_CUE_DURATION, end)

        start, end = _ms(start), _ms(end)
        if end <= start:
            raise ValidationError(f"Cannot add a cue in range {start:.3f}s - {end:.3f}s.")

        entry = SubtitleEntry(start_time=start, end_time=end, text=text)
        self._entries[entry.id] = entry
        self._order.append(entry.id)
        logger.info(f"Added cue {entry.id} at {start:.3f}s - {end:.3f}s")
        return entry

    def update_entry(
        self,
        entry_id: str,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None,
        text: Optional[str] = None,
    ) -> SubtitleEntry:
        """Last-write-wins, in-place update of one entry."""
        entry = self.get_entry(entry_id)
        new_start = _ms(start_time) if start_time is not None else entry.start_time
        new_end = _ms(end_time) if end_time is not None else entry.end_time
        if new_start < 0 or new_end < 0:
            raise ValidationError(f"Cue times must be non-negative ({new_start} -> {new_end}).")
        if new_end < new_start:
            raise ValidationError(f"Cue end time {new_end} is before start time {new_start}.")
        entry.start_time = new_start
        entry.end_time = new_end
        if text is not None:
            entry.text = text
        return entry

    def delete_entry(self, entry_id: str) -> SubtitleEntry:
        entry = self.get_entry(entry_id)
        del self._entries[entry_id]
        self._order.remove(entry_id)
        logger.info(f"Deleted cue {entry_id}")
        return entry

    def shift_times(self, offset: float, media_duration: Optional[float] = None) -> int:
        """
        Moves every cue by `offset` seconds, clamped to [0, media_duration].

        Cues squeezed to 0-0 by a negative shift, or pushed wholly past the end
        of the media, are removed. Returns the number of removed cues.
        """
        kept: List[SubtitleEntry] = []
        for entry in self:
            start = max(0.0, _ms(entry.start_time + offset))
            end = max(0.0, _ms(entry.end_time + offset))
            if media_duration and media_duration > 0:
                if start >= media_duration and end >= media_duration:
                    continue
                start = min(start, media_duration)
                end = min(end, media_duration)
                if end <= start and start > 0:
                    start = max(0.0, _ms(end - MIN_CUE_DURATION))
            if start == 0 and end == 0 and offset < 0:
                continue
            entry.start_time, entry.end_time = start, end
            kept.append(entry)

        removed = len(self._order) - len(kept)
        self.replace_entries(kept)
        logger.info(f"Shifted {len(kept)} cues by {offset:+.3f}s ({removed} removed).")
        return removed

    def sort_by_time(self) -> None:
        self._order.sort(key=lambda entry_id: (self._entries[entry_id].start_time, self._entries[entry_id].end_time))

    # Export

    def export(self, fmt=None) -> str:
        return get_formatter(fmt if fmt is not None else self.format).render(self.entries)

    def save(self, path: str, fmt=None) -> None:
        if fmt is None:
            ext = os.path.splitext(path)[1].lower()
            fmt = ext if ext in (".srt", ".vtt") else self.format
        get_formatter(fmt).format_subtitles(self.entries, path)
