"""Handles probing media files and slicing their audio using ffmpeg."""

import ffmpeg
import os
import logging
from typing import Optional

from .exceptions import AudioExtractionError, ValidationError
from .models import MediaReference

logger = logging.getLogger(__name__)

WAV_MIME_TYPE = "audio/wav"

class AudioExtractor:
    """Reads durations and renders audio windows of media files as WAV bytes."""

    def __init__(self, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None,
                 sample_rate: int = 16000):
        """
        Initializes the AudioExtractor.

        Args:
            ffmpeg_path: Optional path to the ffmpeg executable.
                         If None, assumes ffmpeg is in the system PATH.
            ffprobe_path: Optional path to the ffprobe executable.
            sample_rate: Output sample rate. 16 kHz mono is what speech models expect.
        """
        self.ffmpeg_cmd = ffmpeg_path or 'ffmpeg'
        self.ffprobe_cmd = ffprobe_path or 'ffprobe'
        self.sample_rate = sample_rate
        logger.info(f"Using ffmpeg command: {self.ffmpeg_cmd}")

    def _probe(self, media_path: str) -> dict:
        if not os.path.exists(media_path):
            raise FileNotFoundError(f"Input media file not found: {media_path}")
        try:
            return ffmpeg.probe(media_path, cmd=self.ffprobe_cmd)
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
            logger.error(f"ffprobe failed for {media_path}: {stderr_output}")
            raise AudioExtractionError(f"ffprobe failed: {stderr_output}") from e

    def probe_duration(self, media_path: str) -> float:
        """Returns the container duration in seconds."""
        info = self._probe(media_path)
        try:
            return float(info['format']['duration'])
        except (KeyError, TypeError, ValueError) as e:
            raise AudioExtractionError(f"Could not determine duration of {media_path}") from e

    def extract_segment(self, media_path: str, start_time: float, end_time: float) -> bytes:
        """
        Renders [start_time, end_time) of the media's audio as mono 16-bit PCM WAV.

        Raises:
            ValidationError: If the window is empty or negative.
            AudioExtractionError: If ffmpeg fails.
        """
        duration = end_time - start_time
        if start_time < 0 or duration <= 0:
            raise ValidationError(f"End time must be after start time for audio slicing ({start_time} -> {end_time}).")

        logger.debug(f"Slicing audio {start_time:.3f}s - {end_time:.3f}s from {media_path}")
        try:
            audio_bytes, _ = (
                ffmpeg
                .input(media_path, ss=start_time, t=duration)
                .output('pipe:', format='wav', acodec='pcm_s16le', ar=self.sample_rate, ac=1)
                .run(cmd=self.ffmpeg_cmd, capture_stdout=True, capture_stderr=True)
            )
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
            logger.error(f"ffmpeg stderr: {stderr_output}")
            raise AudioExtractionError(f"ffmpeg failed: {stderr_output}") from e

        if not audio_bytes:
            raise AudioExtractionError(f"ffmpeg produced no audio for {media_path} ({start_time:.3f}s - {end_time:.3f}s)")
        return audio_bytes

    def open_media(self, media_path: str) -> MediaReference:
        """Probes a file and returns the MediaReference the transcription pipeline consumes."""
        info = self._probe(media_path)
        try:
            duration = float(info['format']['duration'])
        except (KeyError, TypeError, ValueError) as e:
            raise AudioExtractionError(f"Could not determine duration of {media_path}") from e

        streams = info.get('streams', [])
        if not any(s.get('codec_type') == 'audio' for s in streams):
            raise AudioExtractionError(f"No audio stream found in {media_path}")
        # Cover art in audio files shows up as a video stream flagged attached_pic.
        has_video = any(
            s.get('codec_type') == 'video' and not s.get('disposition', {}).get('attached_pic')
            for s in streams
        )
        kind = 'video' if has_video else 'audio'
        logger.info(f"Opened {kind} file {media_path} ({duration:.2f}s)")

        return MediaReference(
            name=os.path.basename(media_path),
            kind=kind,
            duration=duration,
            reader=lambda start, end: self.extract_segment(media_path, start, end),
            mime_type=WAV_MIME_TYPE,
        )
