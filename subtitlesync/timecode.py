"""Conversion between caption time strings and seconds offsets."""

import logging
import re

from .exceptions import ValidationError
from .models import SubtitleFormat

logger = logging.getLogger(__name__)

# HH:MM:SS,mmm / HH:MM:SS.mmm, MM:SS.mmm, or bare SS.mmm. Either separator is
# accepted for either format since cues are often pasted between files.
_TIMECODE_RE = re.compile(
    r"^(?:(?:(?P<hours>\d+):)?(?P<minutes>\d{1,2}):)?(?P<seconds>\d{1,2})(?:[.,](?P<fraction>\d+))?$"
)


def parse_timecode(text: str, fmt=SubtitleFormat.SRT) -> float:
    """
    Parses a caption time string into seconds, rounded to the millisecond.

    Args:
        text: e.g. '00:01:02,500', '01:02.500' or '00:01:02.500'.
        fmt: The declared format. Only used for error messages; parsing is
             lenient about the millisecond separator.

    Raises:
        ValidationError: If the string is not a recognizable time code.
    """
    fmt = SubtitleFormat.coerce(fmt)
    match = _TIMECODE_RE.match(text.strip()) if text else None
    if not match:
        raise ValidationError(f"Invalid {fmt.value.upper()} time code: {text!r}")

    hours = int(match.group("hours") or 0)
    minutes = int(match.group("minutes") or 0)
    seconds = int(match.group("seconds"))
    fraction = match.group("fraction") or "0"

    millis = round(float(f"0.{fraction}") * 1000)
    total_ms = ((hours * 60 + minutes) * 60 + seconds) * 1000 + millis
    return round(total_ms / 1000, 3)


def format_timecode(seconds: float, fmt=SubtitleFormat.SRT) -> str:
    """
    Formats seconds as HH:MM:SS<sep>mmm using the format's separator.

    Milliseconds are rounded first, so a value such as 59.9996 carries into
    the minutes field ('00:01:00,000') instead of producing '1000'.
    """
    fmt = SubtitleFormat.coerce(fmt)
    if seconds < 0:
        logger.debug(f"Negative time {seconds} clamped to 0 for formatting.")
        seconds = 0.0
    total_ms = int(round(round(seconds, 3) * 1000))
    hours, total_ms = divmod(total_ms, 3_600_000)
    minutes, total_ms = divmod(total_ms, 60_000)
    secs, millis = divmod(total_ms, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}{fmt.millisecond_separator}{millis:03d}"
