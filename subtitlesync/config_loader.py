"""Handles loading configuration from YAML files."""

import yaml
import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from .exceptions import ConfigurationError, ValidationError
from .languages import AUTO_DETECT
from .models import SubtitleFormat
from .providers.base import ProviderKind, ProviderSettings
from .providers.openai_adapter import DEFAULT_AVALAI_BASE_URL

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = {
    ProviderKind.OPENAI: "OPENAI_API_KEY",
    ProviderKind.AVALAI: "AVALAI_API_KEY",
    ProviderKind.GROQ: "GROQ_API_KEY",
    ProviderKind.GOOGLEAI: "GOOGLE_API_KEY",
}

class ConfigLoader:
    """Loads configuration settings from a YAML file."""

    def load_config(self, config_path: str) -> dict:
        """
        Loads configuration from the specified YAML file path.

        Args:
            config_path: The path to the YAML configuration file.

        Returns:
            A dictionary containing the loaded configuration settings.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file cannot be parsed as YAML or
                              if there are other reading errors.
        """
        logger.info(f"Attempting to load configuration from: {config_path}")
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found at path: {config_path}")
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not os.path.isfile(config_path):
             logger.error(f"Configuration path is not a file: {config_path}")
             raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e
        except OSError as e:
            logger.error(f"Error reading configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if config is None:
            logger.warning(f"Configuration file {config_path} is empty; using defaults.")
            return {}
        if not isinstance(config, dict):
            # Handle cases where YAML loads something other than a dictionary (e.g., just a string)
            logger.error(f"Configuration file {config_path} did not load as a dictionary (root object).")
            raise ConfigurationError(f"Invalid YAML structure in {config_path}. Root must be a mapping (dictionary).")
        logger.info(f"Configuration loaded successfully from {config_path}")
        return config


@dataclass
class AppSettings:
    """Typed view of the configuration mapping, with defaults for every key."""
    transcription_provider: ProviderKind = ProviderKind.OPENAI
    transcription_model: str = "whisper-1"
    refinement_provider: Optional[ProviderKind] = None
    refinement_model: Optional[str] = None
    llm_provider: ProviderKind = ProviderKind.OPENAI
    llm_model: str = "gpt-4.1-mini"
    language: str = AUTO_DETECT
    temperature: float = 0.0
    translation_temperature: float = 0.2
    max_chunk_duration: float = 300.0
    prompt: Optional[str] = None
    api_keys: Dict[ProviderKind, str] = field(default_factory=dict)
    avalai_base_url: str = DEFAULT_AVALAI_BASE_URL
    output_format: SubtitleFormat = SubtitleFormat.SRT
    temp_dir: str = "temp"
    log_dir: str = "logs"
    log_file: str = "subtitlesync.log"
    ffmpeg_path: Optional[str] = None
    device: str = "cuda"

    @classmethod
    def from_dict(cls, config: Mapping) -> "AppSettings":
        """
        Builds settings from a loaded configuration mapping.

        Raises:
            ConfigurationError: If a value has the wrong type or is out of range.
        """
        try:
            settings = cls(
                transcription_provider=ProviderKind.coerce(config.get('transcription_provider', 'openai')),
                transcription_model=str(config.get('transcription_model', 'whisper-1')),
                refinement_provider=(ProviderKind.coerce(config['refinement_provider'])
                                     if config.get('refinement_provider') else None),
                refinement_model=config.get('refinement_model'),
                llm_provider=ProviderKind.coerce(config.get('llm_provider', 'openai')),
                llm_model=str(config.get('llm_model', 'gpt-4.1-mini')),
                language=str(config.get('language', AUTO_DETECT)),
                temperature=float(config.get('temperature', 0.0)),
                translation_temperature=float(config.get('translation_temperature', 0.2)),
                max_chunk_duration=float(config.get('max_chunk_duration', 300)),
                prompt=config.get('prompt'),
                api_keys={ProviderKind.coerce(k): str(v) for k, v in (config.get('api_keys') or {}).items() if v},
                avalai_base_url=config.get('avalai_base_url') or DEFAULT_AVALAI_BASE_URL,
                output_format=SubtitleFormat.coerce(config.get('output_format', 'srt')),
                temp_dir=config.get('temp_dir', 'temp'),
                log_dir=config.get('log_dir', 'logs'),
                log_file=config.get('log_file', 'subtitlesync.log'),
                ffmpeg_path=config.get('ffmpeg_path'),
                device=config.get('device', 'cuda'),
            )
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e
        settings.validate()
        return settings

    def validate(self) -> None:
        if not 0.0 <= self.temperature <= 1.0:
            raise ConfigurationError(f"'temperature' must be between 0 and 1, got {self.temperature}.")
        if not 0.0 <= self.translation_temperature <= 1.0:
            raise ConfigurationError(f"'translation_temperature' must be between 0 and 1, got {self.translation_temperature}.")
        if self.max_chunk_duration <= 0:
            raise ConfigurationError(f"'max_chunk_duration' must be positive, got {self.max_chunk_duration}.")
        if not self.transcription_model.strip() or not self.llm_model.strip():
            raise ConfigurationError("Model names cannot be empty.")

    def resolve_api_keys(self, environ: Mapping[str, str]) -> None:
        """Fills missing API keys from environment-style variables (e.g. OPENAI_API_KEY)."""
        for kind, variable in API_KEY_ENV_VARS.items():
            if kind not in self.api_keys and environ.get(variable):
                logger.info(f"Using {variable} from the environment for provider '{kind.value}'.")
                self.api_keys[kind] = environ[variable]

    def provider_settings(self, kind, temperature: Optional[float] = None) -> ProviderSettings:
        """The explicit settings object handed to an adapter for one request."""
        kind = ProviderKind.coerce(kind)
        return ProviderSettings(
            kind=kind,
            api_key=self.api_keys.get(kind),
            base_url=self.avalai_base_url if kind is ProviderKind.AVALAI else None,
            temperature=self.temperature if temperature is None else temperature,
        )
