"""Speech-to-text on the local machine using OpenAI's Whisper package."""

import asyncio
import logging
import mimetypes
import os
import tempfile
from typing import FrozenSet, List, Optional

import torch
import whisper

from ..exceptions import ValidationError
from ..models import Segment
from .base import Capability, ProviderAdapter, ProviderKind, ProviderSettings

logger = logging.getLogger(__name__)


class LocalWhisperAdapter(ProviderAdapter):
    """
    Runs a Whisper checkpoint in-process. Needs no API key, but cannot
    generate free text, so it is not usable for translation.
    """

    kind = ProviderKind.LOCAL

    def __init__(self, settings: ProviderSettings, model: str, device: str = "cuda", fp16: bool = True):
        """
        Loads the Whisper model.

        Args:
            settings: Provider settings; only `temperature` is used.
            model: Whisper checkpoint name (e.g. "base", "medium.en", "large-v3").
            device: "cuda" or "cpu". Falls back to CPU when CUDA is unavailable.
            fp16: Whether to use float16 precision (CUDA only).

        Raises:
            ValidationError: If the device name is invalid.
            ProviderError: If the model fails to load.
        """
        super().__init__(settings, model)
        if device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA device requested but not available. Falling back to CPU.")
            device = "cpu"
        elif device not in ("cuda", "cpu"):
            raise ValidationError(f"Invalid device specified: {device}. Choose 'cuda' or 'cpu'.")
        self.device = device
        self.fp16 = fp16 and device == "cuda"

        logger.info(f"Loading Whisper model '{self.model}' on device '{self.device}' (FP16: {self.fp16})")
        try:
            self.whisper_model = whisper.load_model(self.model, device=self.device)
        except Exception as e:
            raise self._wrap(e) from e
        logger.info(f"Whisper model '{self.model}' loaded successfully.")

    def capabilities(self) -> FrozenSet[Capability]:
        return frozenset({Capability.TIMESTAMPED, Capability.WHOLE_TEXT})

    def _run(self, audio_bytes: bytes, language: Optional[str], prompt: Optional[str], mime_type: str) -> dict:
        suffix = mimetypes.guess_extension(mime_type) or ".wav"
        # Whisper decodes through ffmpeg, which wants a path.
        fd, audio_path = tempfile.mkstemp(suffix=suffix, prefix="subtitlesync_")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(audio_bytes)
            return self.whisper_model.transcribe(
                audio_path,
                language=language,
                initial_prompt=prompt,
                temperature=self.settings.temperature,
                fp16=self.fp16,
                verbose=None,
            )
        finally:
            try:
                os.remove(audio_path)
            except OSError:
                logger.warning(f"Could not remove temporary audio file: {audio_path}")

    async def _transcribe_timestamped(self, audio_bytes: bytes, language: Optional[str],
                                      mime_type: str) -> List[Segment]:
        result = await asyncio.to_thread(self._run, audio_bytes, language, None, mime_type)
        logger.info(f"Local transcription completed. Detected language: {result.get('language', 'N/A')}")
        segments = []
        for seg_data in result.get("segments", []):
            if "start" in seg_data and "end" in seg_data and "text" in seg_data:
                segments.append(Segment(
                    start_time=float(seg_data["start"]),
                    end_time=float(seg_data["end"]),
                    text=seg_data["text"],
                ))
            else:
                logger.warning(f"Skipping incomplete segment data: {seg_data}")
        return segments

    async def _transcribe_whole_text(self, audio_bytes: bytes, language: Optional[str],
                                     prompt: Optional[str], mime_type: str) -> str:
        result = await asyncio.to_thread(self._run, audio_bytes, language, prompt, mime_type)
        return result.get("text", "")
