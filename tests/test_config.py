"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from voicepeak_broker.config import BrokerConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host overrides out of the tests."""
    monkeypatch.delenv("VOICEPEAK_PATH", raising=False)
    monkeypatch.delenv("VOICEPEAK_PLAY_COMMAND", raising=False)


class TestBrokerConfig:
    """Tests for BrokerConfig.from_dict."""

    def test_defaults(self) -> None:
        """Test default values for an empty document."""
        config = BrokerConfig.from_dict({})

        assert config.process.timeout_seconds == 30.0
        assert config.process.max_concurrent == 5
        assert config.process.kill_grace_seconds == 5.0
        assert config.retry.max_attempts == 5
        assert config.retry.delay_seconds == 1.0
        assert config.artifacts.prefix == "voicepeak-mcp"
        assert config.artifacts.extension == ".wav"
        assert config.artifacts.sweep_interval_seconds == 300.0
        assert config.artifacts.stale_after_seconds == 3600.0
        assert config.narrators.ttl_seconds == 300.0
        assert config.engine.debug_marker == "[debug]"

    def test_overrides(self, tmp_path: Path) -> None:
        """Test values read from each section."""
        config = BrokerConfig.from_dict(
            {
                "engine": {"path": "/opt/voicepeak"},
                "process": {"timeout_seconds": 12, "max_concurrent": 2},
                "artifacts": {"directory": str(tmp_path)},
                "logging": {"level": "DEBUG", "file": None},
            }
        )

        assert config.engine.path == "/opt/voicepeak"
        assert config.process.timeout_seconds == 12.0
        assert config.process.max_concurrent == 2
        assert config.artifacts.directory == tmp_path
        assert config.logging.level == "DEBUG"
        assert config.logging.file is None

    def test_null_sections(self) -> None:
        """Test that empty YAML sections fall back to defaults."""
        config = BrokerConfig.from_dict({"process": None, "retry": None})
        assert config.process.max_concurrent == 5
        assert config.retry.max_attempts == 5

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment variables win over the file."""
        monkeypatch.setenv("VOICEPEAK_PATH", "/env/voicepeak")
        monkeypatch.setenv("VOICEPEAK_PLAY_COMMAND", "paplay")

        config = BrokerConfig.from_dict({"engine": {"path": "/opt/voicepeak"}})

        assert config.engine.path == "/env/voicepeak"
        assert config.engine.play_command == "paplay"


class TestLoadConfig:
    """Tests for load_config."""

    def test_load_from_file(self, tmp_path: Path) -> None:
        """Test loading an explicit YAML file."""
        path = tmp_path / "broker.yaml"
        path.write_text("retry:\n  max_attempts: 3\nnarrators:\n  ttl_seconds: 60\n")

        config = load_config(path)

        assert config.retry.max_attempts == 3
        assert config.narrators.ttl_seconds == 60.0

    def test_empty_file(self, tmp_path: Path) -> None:
        """Test that an empty file yields defaults."""
        path = tmp_path / "broker.yaml"
        path.write_text("")

        assert load_config(path).retry.max_attempts == 5

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test fallback to defaults when the file does not exist."""
        config = load_config(tmp_path / "missing.yaml")
        assert config.process.max_concurrent == 5
