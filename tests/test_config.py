"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest

from bookingslots.config import AppConfig


def _write(tmp_path: Path, content: str) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(content, encoding="utf-8")
    return config_path


def test_load_from_yaml(tmp_path):
    """A complete file is loaded and normalised."""
    config_path = _write(
        tmp_path,
        "data_source:\n"
        "  url: https://example.supabase.co/\n"
        "  api_key: secret\n"
        "default_duration_minutes: 90\n"
        "timezone: Europe/Berlin\n"
        "mock_data_file: fixtures/schedule.json\n",
    )

    config = AppConfig.load_from_yaml(config_path)

    assert config.data_source.url == "https://example.supabase.co"
    assert config.data_source.is_configured()
    assert config.data_source.timeout_seconds == 30
    assert config.default_duration_minutes == 90
    assert config.timezone == "Europe/Berlin"
    assert config.mock_data_file == tmp_path / "fixtures" / "schedule.json"


def test_empty_file_uses_defaults(tmp_path):
    """An empty file yields the defaults."""
    config = AppConfig.load_from_yaml(_write(tmp_path, ""))

    assert config.default_duration_minutes == 60
    assert config.timezone == "America/Los_Angeles"
    assert not config.data_source.is_configured()


def test_missing_file(tmp_path):
    """A missing file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        AppConfig.load_from_yaml(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path):
    """Broken YAML is reported as ValueError."""
    with pytest.raises(ValueError, match="Invalid YAML"):
        AppConfig.load_from_yaml(_write(tmp_path, "data_source: [unclosed\n"))


def test_non_mapping_root(tmp_path):
    """The root must be a mapping."""
    with pytest.raises(ValueError, match="mapping"):
        AppConfig.load_from_yaml(_write(tmp_path, "- a\n- b\n"))


@pytest.mark.parametrize(
    "content",
    [
        "default_duration_minutes: 0\n",
        "timezone: Nowhere/Special\n",
        "data_source:\n  timeout_seconds: -1\n",
    ],
)
def test_invalid_values(tmp_path, content):
    """Invalid values fail validation."""
    with pytest.raises(ValueError):
        AppConfig.load_from_yaml(_write(tmp_path, content))
