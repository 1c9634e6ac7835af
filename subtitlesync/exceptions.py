"""Custom Exceptions for the SubtitleSync application."""

from typing import Optional


class SubtitleSyncError(Exception):
    """Base class for exceptions in this module."""
    pass

class ConfigurationError(SubtitleSyncError):
    """Exception raised for errors in configuration loading."""
    pass

class AudioExtractionError(SubtitleSyncError):
    """Exception raised for errors while probing or slicing media audio."""
    pass

class TranscriptionError(SubtitleSyncError):
    """Exception raised when a whole-document transcription run fails unexpectedly."""
    pass

class FormattingError(SubtitleSyncError):
    """Exception raised for errors during subtitle formatting."""
    pass

class FileSystemError(SubtitleSyncError):
    """Exception raised for file system related errors (permissions, not found etc)."""
    pass

class ValidationError(SubtitleSyncError):
    """A request field is missing or malformed. Raised before any network call."""
    pass

class EntryNotFoundError(SubtitleSyncError):
    """No subtitle entry with the given id exists in the track."""

    def __init__(self, entry_id: str):
        super().__init__(f"Subtitle entry not found: {entry_id}")
        self.entry_id = entry_id

class CapabilityUnsupportedError(SubtitleSyncError):
    """The provider does not implement the requested task (for this model)."""

    def __init__(self, provider: str, capability: str, model: Optional[str] = None):
        detail = f" with model '{model}'" if model else ""
        super().__init__(f"Provider '{provider}' does not support '{capability}'{detail}.")
        self.provider = provider
        self.capability = capability
        self.model = model

class ProviderError(SubtitleSyncError):
    """Network, auth or quota failure reported by a provider adapter."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider} request failed: {message}")
        self.provider = provider
        self.provider_message = message

class ParseSkip(Exception):
    """A single caption block is malformed. Never escapes the parser."""
    pass

class EmptyResultWarning(UserWarning):
    """A provider returned no text or segments."""
    pass
