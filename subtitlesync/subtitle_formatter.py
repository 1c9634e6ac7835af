"""Handles serializing subtitle entries into SRT and WebVTT text."""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List

from .models import SubtitleEntry, SubtitleFormat
from .exceptions import FormattingError
from .timecode import format_timecode

logger = logging.getLogger(__name__)

class SubtitleFormatter(ABC):
    """Abstract base class for subtitle formatters."""

    format: SubtitleFormat

    @property
    def header(self) -> str:
        return ""

    def render(self, entries: Iterable[SubtitleEntry]) -> str:
        """
        Serializes entries in the given order with fresh 1-based cue numbers.

        The output depends only on the entries, so identical input always
        yields identical text.
        """
        blocks: List[str] = []
        for index, entry in enumerate(entries, start=1):
            if "\n\n" in entry.text or not entry.text.strip():
                logger.warning(f"Cue {index} has empty text or blank lines; it will not survive a re-parse.")
            blocks.append(self.format_block(index, entry))
        return self.header + "\n".join(blocks)

    @abstractmethod
    def format_block(self, index: int, entry: SubtitleEntry) -> str:
        """Returns one cue block terminated by a single newline."""
        pass

    def format_subtitles(self, entries: List[SubtitleEntry], output_path: str) -> None:
        """
        Serializes entries and writes them to a UTF-8 file.

        Args:
            entries: The cues to export, in export order.
            output_path: Path to save the subtitle file.

        Raises:
            FormattingError: If file writing fails.
        """
        logger.info(f"Formatting {len(entries)} subtitles to {self.format.value.upper()}: {output_path}")
        content = self.render(entries)
        try:
            with open(output_path, 'w', encoding='utf-8', newline='') as f:
                f.write(content)
            logger.info(f"Successfully wrote {len(entries)} subtitle blocks to {output_path}")
        except OSError as e:
            logger.error(f"Failed to write {self.format.value.upper()} file to {output_path}: {e}", exc_info=True)
            raise FormattingError(f"Could not write subtitle file: {e}") from e


class SRTFormatter(SubtitleFormatter):
    """Formats subtitles into the SRT (SubRip Text) format."""

    format = SubtitleFormat.SRT

    def format_block(self, index: int, entry: SubtitleEntry) -> str:
        start = format_timecode(entry.start_time, self.format)
        end = format_timecode(entry.end_time, self.format)
        return f"{index}\n{start} --> {end}\n{entry.text}\n"


class VTTFormatter(SRTFormatter):
    """Formats subtitles into the VTT (Web Video Text Tracks) format."""

    format = SubtitleFormat.VTT

    @property
    def header(self) -> str:
        return "WEBVTT\n\n"


def get_formatter(fmt) -> SubtitleFormatter:
    fmt = SubtitleFormat.coerce(fmt)
    if fmt is SubtitleFormat.VTT:
        return VTTFormatter()
    return SRTFormatter()


def serialize(entries: Iterable[SubtitleEntry], fmt) -> str:
    """Shortcut for get_formatter(fmt).render(entries)."""
    return get_formatter(fmt).render(entries)
