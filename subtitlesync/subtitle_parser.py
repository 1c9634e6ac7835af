"""Parses SRT and WebVTT caption text into subtitle entries."""

import logging
import os
import re
from typing import List, Optional

from .exceptions import ParseSkip, ValidationError
from .models import SubtitleEntry, SubtitleFormat
from .timecode import parse_timecode

logger = logging.getLogger(__name__)

_BLOCK_SPLIT_RE = re.compile(r"\n\s*\n")
_VTT_HEADER_RE = re.compile(r"^WEBVTT[^\n]*(?:\n|$)", re.IGNORECASE)
_VTT_METADATA_BLOCKS = ("NOTE", "STYLE", "REGION")


def _normalize(content: str) -> str:
    return content.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n").strip()


def _split_blocks(content: str) -> List[List[str]]:
    """Splits on one or more blank lines; each block becomes a list of stripped, non-empty lines."""
    blocks = []
    for raw_block in _BLOCK_SPLIT_RE.split(content):
        lines = [line.strip() for line in raw_block.split("\n")]
        lines = [line for line in lines if line]
        if lines:
            blocks.append(lines)
    return blocks


def _parse_time_range(line: str, fmt: SubtitleFormat):
    if "-->" not in line:
        raise ParseSkip(f"Missing '-->' in time line: {line!r}")
    start_part, end_part = line.split("-->", 1)
    end_tokens = end_part.split()
    if not end_tokens:
        raise ParseSkip(f"Missing end time in: {line!r}")
    # Anything after the end time is cue settings (position, align, ...).
    try:
        start = parse_timecode(start_part, fmt)
        end = parse_timecode(end_tokens[0], fmt)
    except ValidationError as e:
        raise ParseSkip(str(e)) from e
    if end < start:
        raise ParseSkip(f"End time {end} is before start time {start}")
    return start, end


def _parse_cue(lines: List[str], fmt: SubtitleFormat) -> SubtitleEntry:
    """
    Builds one entry from a block. The first line is an index (SRT) or an
    optional cue identifier (VTT) unless it is already the time range.
    """
    time_index = 0 if "-->" in lines[0] else 1
    if len(lines) < time_index + 2:
        raise ParseSkip(f"Block has no text lines: {lines!r}")
    start, end = _parse_time_range(lines[time_index], fmt)
    text = "\n".join(lines[time_index + 1:])
    return SubtitleEntry(start_time=start, end_time=end, text=text)


def _parse_blocks(blocks: List[List[str]], fmt: SubtitleFormat) -> List[SubtitleEntry]:
    entries = []
    for block_number, lines in enumerate(blocks, start=1):
        try:
            entries.append(_parse_cue(lines, fmt))
        except ParseSkip as skip:
            logger.debug(f"Skipping malformed {fmt.value.upper()} block {block_number}: {skip}")
    return entries


def parse_srt(content: str) -> List[SubtitleEntry]:
    """Parses SubRip text. Malformed blocks are dropped, never fatal."""
    blocks = _split_blocks(_normalize(content))
    entries = _parse_blocks(blocks, SubtitleFormat.SRT)
    logger.info(f"Parsed {len(entries)} SRT cues from {len(blocks)} blocks.")
    return entries


def parse_vtt(content: str) -> List[SubtitleEntry]:
    """Parses WebVTT text, ignoring the header and NOTE/STYLE/REGION blocks."""
    content = _VTT_HEADER_RE.sub("", _normalize(content), count=1)
    blocks = [
        lines for lines in _split_blocks(content.strip())
        if lines[0].split(" ", 1)[0].upper() not in _VTT_METADATA_BLOCKS
    ]
    entries = _parse_blocks(blocks, SubtitleFormat.VTT)
    logger.info(f"Parsed {len(entries)} VTT cues from {len(blocks)} blocks.")
    return entries


def detect_format(content: str, file_name: Optional[str] = None) -> SubtitleFormat:
    """Infers the format from the file extension, then from a WEBVTT header."""
    if file_name:
        ext = os.path.splitext(file_name)[1].lower()
        if ext in (".srt", ".vtt"):
            return SubtitleFormat.coerce(ext)
    if _normalize(content).upper().startswith("WEBVTT"):
        return SubtitleFormat.VTT
    return SubtitleFormat.SRT


def parse_subtitles(content: str, fmt=None, file_name: Optional[str] = None) -> List[SubtitleEntry]:
    """Parses caption text in the declared format, or the inferred one when fmt is None."""
    fmt = SubtitleFormat.coerce(fmt) if fmt is not None else detect_format(content, file_name)
    if fmt is SubtitleFormat.VTT:
        return parse_vtt(content)
    return parse_srt(content)
