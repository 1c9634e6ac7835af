import pytest

from subtitlesync.config_loader import AppSettings, ConfigLoader
from subtitlesync.exceptions import ConfigurationError
from subtitlesync.models import SubtitleFormat
from subtitlesync.providers.base import ProviderKind


def test_load_config_reads_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("transcription_provider: groq\nmax_chunk_duration: 120\n", encoding="utf-8")
    assert ConfigLoader().load_config(str(path)) == {"transcription_provider": "groq", "max_chunk_duration": 120}


def test_load_config_errors(tmp_path):
    loader = ConfigLoader()
    with pytest.raises(FileNotFoundError):
        loader.load_config(str(tmp_path / "missing.yaml"))
    with pytest.raises(ConfigurationError):
        loader.load_config(str(tmp_path))

    bad = tmp_path / "bad.yaml"
    bad.write_text("key: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        loader.load_config(str(bad))

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        loader.load_config(str(listing))


def test_empty_config_file_means_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert ConfigLoader().load_config(str(path)) == {}


def test_defaults():
    settings = AppSettings.from_dict({})
    assert settings.transcription_provider is ProviderKind.OPENAI
    assert settings.transcription_model == "whisper-1"
    assert settings.llm_model == "gpt-4.1-mini"
    assert settings.language == "auto-detect"
    assert settings.max_chunk_duration == 300
    assert settings.output_format is SubtitleFormat.SRT
    assert settings.refinement_provider is None


def test_values_are_coerced():
    settings = AppSettings.from_dict({
        "transcription_provider": "GoogleAI",
        "refinement_provider": "openai",
        "refinement_model": "gpt-4o-transcribe",
        "output_format": "VTT",
        "temperature": "0.4",
        "api_keys": {"groq": "gsk", "openai": None},
    })
    assert settings.transcription_provider is ProviderKind.GOOGLEAI
    assert settings.refinement_provider is ProviderKind.OPENAI
    assert settings.output_format is SubtitleFormat.VTT
    assert settings.temperature == 0.4
    assert settings.api_keys == {ProviderKind.GROQ: "gsk"}


@pytest.mark.parametrize("config", [
    {"transcription_provider": "azure"},
    {"temperature": 1.5},
    {"translation_temperature": -0.1},
    {"max_chunk_duration": 0},
    {"max_chunk_duration": "long"},
    {"output_format": "ass"},
    {"llm_model": " "},
])
def test_invalid_values(config):
    with pytest.raises(ConfigurationError):
        AppSettings.from_dict(config)


def test_api_keys_from_environment_do_not_override_config():
    settings = AppSettings.from_dict({"api_keys": {"openai": "from-config"}})
    settings.resolve_api_keys({"OPENAI_API_KEY": "from-env", "GOOGLE_API_KEY": "g-env"})
    assert settings.api_keys[ProviderKind.OPENAI] == "from-config"
    assert settings.api_keys[ProviderKind.GOOGLEAI] == "g-env"


def test_provider_settings():
    settings = AppSettings.from_dict({"api_keys": {"avalai": "ak"}, "avalai_base_url": "https://proxy/v1",
                                      "temperature": 0.1})
    avalai = settings.provider_settings("avalai")
    assert (avalai.kind, avalai.api_key, avalai.base_url, avalai.temperature) == (
        ProviderKind.AVALAI, "ak", "https://proxy/v1", 0.1)
    openai = settings.provider_settings(ProviderKind.OPENAI, temperature=0.2)
    assert (openai.api_key, openai.base_url, openai.temperature) == (None, None, 0.2)
