"""Gemini adapter built on the google-genai SDK."""

import logging
from typing import FrozenSet, Optional

from google import genai
from google.genai import types

from .base import Capability, ProviderAdapter, ProviderKind, ProviderSettings, transcription_prompt

logger = logging.getLogger(__name__)


class GoogleAIAdapter(ProviderAdapter):
    """
    Gemini models take audio inline and answer with plain text, so they can
    transcribe a whole clip and generate text, but never return segment
    timestamps.
    """

    kind = ProviderKind.GOOGLEAI

    def __init__(self, settings: ProviderSettings, model: str, client: Optional[genai.Client] = None):
        super().__init__(settings, model)
        self._owns_client = client is None
        if client is None:
            client = genai.Client(api_key=self._require_api_key())
        self.client = client

    async def aclose(self) -> None:
        if self._owns_client:
            logger.debug(f"Closing {self.name} client for {self.model}")
            await self.client.aio.aclose()
            self.client.close()

    def capabilities(self) -> FrozenSet[Capability]:
        return frozenset({Capability.WHOLE_TEXT, Capability.GENERATE_TEXT})

    async def _transcribe_whole_text(self, audio_bytes: bytes, language: Optional[str],
                                     prompt: Optional[str], mime_type: str) -> str:
        instruction = transcription_prompt(language)
        if prompt:
            instruction = f"{instruction}\nContext: {prompt}"
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=[types.Part.from_bytes(data=audio_bytes, mime_type=mime_type), instruction],
            config=types.GenerateContentConfig(temperature=self.settings.temperature),
        )
        return response.text or ""

    async def _generate_text(self, prompt: str, temperature: float) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(temperature=temperature),
        )
        return response.text or ""
