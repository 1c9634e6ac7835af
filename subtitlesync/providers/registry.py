"""Selects the adapter for a provider once per request."""

import logging
from typing import Dict, Type

from .base import ProviderAdapter, ProviderKind, ProviderSettings
from .google_adapter import GoogleAIAdapter
from .openai_adapter import AvalAIAdapter, GroqAdapter, OpenAIAdapter

logger = logging.getLogger(__name__)

_REMOTE_ADAPTERS: Dict[ProviderKind, Type[ProviderAdapter]] = {
    ProviderKind.OPENAI: OpenAIAdapter,
    ProviderKind.AVALAI: AvalAIAdapter,
    ProviderKind.GROQ: GroqAdapter,
    ProviderKind.GOOGLEAI: GoogleAIAdapter,
}


def create_adapter(settings: ProviderSettings, model: str, **kwargs) -> ProviderAdapter:
    """
    Builds the adapter for `settings.kind` bound to one model.

    Extra keyword arguments go to the adapter constructor (an injected SDK
    `client` for remote providers, `device`/`fp16` for the local one).
    """
    kind = ProviderKind.coerce(settings.kind)
    if kind is ProviderKind.LOCAL:
        # torch and whisper are an optional extra; only import them when asked for.
        from .local_whisper import LocalWhisperAdapter
        adapter_cls: Type[ProviderAdapter] = LocalWhisperAdapter
    else:
        adapter_cls = _REMOTE_ADAPTERS[kind]
    logger.debug(f"Creating {adapter_cls.__name__} for model '{model}'")
    return adapter_cls(settings, model, **kwargs)
