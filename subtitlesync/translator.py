"""Handles per-cue text translation through a language-model provider."""

import logging
import os
from typing import Callable, Optional, Tuple

from .document import NEW_ENTRY_PLACEHOLDER
from .exceptions import ValidationError
from .languages import language_name
from .models import SubtitleEntry, SubtitleFormat, SubtitleTrack, TranslationStats
from .providers.base import Capability, ProviderAdapter

logger = logging.getLogger(__name__)

TRANSLATION_TEMPERATURE = 0.2
PLACEHOLDER_TEXTS = frozenset({"...", "null", NEW_ENTRY_PLACEHOLDER.lower()})

# Outcome tags for a single cue
TRANSLATED = "translated"
SKIPPED = "skipped"
KEPT_ORIGINAL = "kept_original"

TRANSLATION_PROMPT = """Translate the following text into {language}.
Respond *only* with the translated text. Do not add any extra explanations, apologies, or conversational filler.
If the input text is a common placeholder like "New subtitle text...", "...", "null", or appears to be already in {language}, please return the original text unchanged.
Do not translate proper nouns or entities that should remain in their original language unless contextually appropriate for {language}.

Original text:
'''
{text}
'''"""


def is_placeholder(text: str) -> bool:
    """True for text that must never be sent out: too short or a known sentinel."""
    stripped = (text or "").strip()
    return len(stripped) < 2 or stripped.lower() in PLACEHOLDER_TEXTS


class Translator:
    """
    Best-effort translation. A failing or empty provider answer never
    reaches the caller: the original text is returned instead.
    """

    def __init__(self, adapter: ProviderAdapter, temperature: float = TRANSLATION_TEMPERATURE):
        """
        Args:
            adapter: A provider adapter able to generate text.
            temperature: Sampling temperature; kept low for literal translations.

        Raises:
            CapabilityUnsupportedError: If the adapter cannot generate text.
        """
        adapter.require(Capability.GENERATE_TEXT)
        self.adapter = adapter
        self.temperature = temperature

    def build_prompt(self, text: str, target_language: str) -> str:
        return TRANSLATION_PROMPT.format(language=language_name(target_language), text=text)

    async def _translate(self, text: str, target_language: str) -> Tuple[str, str]:
        if not target_language or not target_language.strip():
            raise ValidationError("A target language is required for translation.")
        if is_placeholder(text):
            return text, SKIPPED

        try:
            translated = await self.adapter.generate_text(self.build_prompt(text, target_language),
                                                          temperature=self.temperature)
        except Exception as e:
            logger.warning(f"Translation to {target_language} failed for '{text[:50]}': {e}. Keeping original text.")
            return text, KEPT_ORIGINAL

        if not translated or not translated.strip():
            logger.warning(f"Empty translation to {target_language} for '{text[:50]}'. Keeping original text.")
            return text, KEPT_ORIGINAL
        logger.debug(f"Translated '{text[:50]}' -> '{translated[:50]}'")
        return translated, TRANSLATED

    async def translate(self, text: str, target_language: str) -> str:
        """
        Translates a single cue text.

        Returns the original text unchanged for placeholders, on any provider
        failure, and when the provider answers with nothing.

        Raises:
            ValidationError: If no target language is given.
        """
        translated, _ = await self._translate(text, target_language)
        return translated

    async def translate_track(
        self,
        track: SubtitleTrack,
        target_language: str,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> Tuple[SubtitleTrack, TranslationStats]:
        """
        Translates every cue, one at a time, into a new track.

        The source track is not modified. The new track keeps cue timing and
        order and gets fresh ids and a language-suffixed file name.
        """
        stats = TranslationStats()
        total = len(track.entries)
        logger.info(f"Translating {total} cue(s) of '{track.file_name}' to {language_name(target_language)} "
                    f"with {self.adapter.name} ({self.adapter.model})")

        translated_entries = []
        for i, entry in enumerate(track.entries):
            text, status = await self._translate(entry.text, target_language)
            if status == TRANSLATED:
                stats.translated += 1
            elif status == SKIPPED:
                stats.skipped += 1
            else:
                stats.kept_original += 1
            translated_entries.append(SubtitleEntry(start_time=entry.start_time, end_time=entry.end_time, text=text))
            if progress_callback is not None:
                progress_callback(i + 1, total)
            if (i + 1) % 20 == 0 or i == total - 1:
                logger.info(f"Translated cue {i + 1}/{total}")

        base_name, ext = os.path.splitext(track.file_name)
        file_name = f"{base_name}.{target_language}{ext or '.' + SubtitleFormat.coerce(track.format).value}"
        logger.info(f"Translation finished: {stats.translated} translated, {stats.skipped} skipped, "
                    f"{stats.kept_original} kept original.")
        return SubtitleTrack(file_name=file_name, format=track.format, entries=translated_entries), stats
