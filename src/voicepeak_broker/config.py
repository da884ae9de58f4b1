"""Broker configuration.

Settings are read from a YAML file organised in sections (engine, process,
retry, artifacts, narrators, logging). Every key is optional; missing keys
fall back to the defaults below. The engine and playback commands can also
be overridden with the VOICEPEAK_PATH and VOICEPEAK_PLAY_COMMAND environment
variables, which win over the file.

Example config/voicepeak_broker.yaml:
    engine:
      path: /Applications/voicepeak.app/Contents/MacOS/voicepeak
    process:
      timeout_seconds: 30
      max_concurrent: 5
    retry:
      max_attempts: 5
      delay_seconds: 1.0
"""

import logging
import os
import platform
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = [
    Path("config/voicepeak_broker.yaml"),
    Path(__file__).parent.parent.parent / "config" / "voicepeak_broker.yaml",
]

MACOS_ENGINE_PATH = "/Applications/voicepeak.app/Contents/MacOS/voicepeak"


def _default_engine_path() -> str:
    if platform.system() == "Darwin":
        return MACOS_ENGINE_PATH
    return "voicepeak"


def _default_play_command() -> str:
    if platform.system() == "Darwin":
        return "afplay"
    return "aplay"


@dataclass
class EngineSettings:
    """External engine invocation settings.

    Attributes:
        path: Path to the VOICEPEAK executable.
        play_command: Command used to play a generated file.
        debug_marker: Substring identifying diagnostic noise lines.
    """

    path: str = field(default_factory=_default_engine_path)
    play_command: str = field(default_factory=_default_play_command)
    debug_marker: str = "[debug]"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineSettings":
        """Create from dictionary."""
        defaults = cls()
        return cls(
            path=data.get("path", defaults.path),
            play_command=data.get("play_command", defaults.play_command),
            debug_marker=data.get("debug_marker", defaults.debug_marker),
        )


@dataclass
class ProcessSettings:
    """Process supervision limits."""

    timeout_seconds: float = 30.0
    max_concurrent: int = 5
    kill_grace_seconds: float = 5.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProcessSettings":
        """Create from dictionary."""
        return cls(
            timeout_seconds=float(data.get("timeout_seconds", 30.0)),
            max_concurrent=int(data.get("max_concurrent", 5)),
            kill_grace_seconds=float(data.get("kill_grace_seconds", 5.0)),
        )


@dataclass
class RetrySettings:
    """Retry limits for one logical synthesis."""

    max_attempts: int = 5
    delay_seconds: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RetrySettings":
        """Create from dictionary."""
        return cls(
            max_attempts=int(data.get("max_attempts", 5)),
            delay_seconds=float(data.get("delay_seconds", 1.0)),
        )


@dataclass
class ArtifactSettings:
    """Temporary artifact naming and reclamation."""

    prefix: str = "voicepeak-mcp"
    extension: str = ".wav"
    directory: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    sweep_interval_seconds: float = 300.0
    stale_after_seconds: float = 3600.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArtifactSettings":
        """Create from dictionary."""
        directory = data.get("directory")
        return cls(
            prefix=data.get("prefix", "voicepeak-mcp"),
            extension=data.get("extension", ".wav"),
            directory=Path(directory) if directory else Path(tempfile.gettempdir()),
            sweep_interval_seconds=float(data.get("sweep_interval_seconds", 300.0)),
            stale_after_seconds=float(data.get("stale_after_seconds", 3600.0)),
        )


@dataclass
class NarratorSettings:
    """Narrator list cache settings."""

    ttl_seconds: float = 300.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NarratorSettings":
        """Create from dictionary."""
        return cls(ttl_seconds=float(data.get("ttl_seconds", 300.0)))


@dataclass
class LoggingSettings:
    """Log destinations and verbosity."""

    file: str | None = "voicepeak_broker.log"
    level: str = "INFO"
    max_size_mb: int = 10
    backup_count: int = 3

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoggingSettings":
        """Create from dictionary."""
        return cls(
            file=data.get("file", "voicepeak_broker.log"),
            level=str(data.get("level", "INFO")),
            max_size_mb=int(data.get("max_size_mb", 10)),
            backup_count=int(data.get("backup_count", 3)),
        )


@dataclass
class BrokerConfig:
    """Complete broker configuration."""

    engine: EngineSettings = field(default_factory=EngineSettings)
    process: ProcessSettings = field(default_factory=ProcessSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    artifacts: ArtifactSettings = field(default_factory=ArtifactSettings)
    narrators: NarratorSettings = field(default_factory=NarratorSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BrokerConfig":
        """Create from a parsed YAML document."""
        config = cls(
            engine=EngineSettings.from_dict(data.get("engine") or {}),
            process=ProcessSettings.from_dict(data.get("process") or {}),
            retry=RetrySettings.from_dict(data.get("retry") or {}),
            artifacts=ArtifactSettings.from_dict(data.get("artifacts") or {}),
            narrators=NarratorSettings.from_dict(data.get("narrators") or {}),
            logging=LoggingSettings.from_dict(data.get("logging") or {}),
        )
        config.apply_env(os.environ)
        return config

    def apply_env(self, environ: Any) -> None:
        """Apply environment variable overrides.

        Args:
            environ: Mapping of environment variables (usually os.environ).
        """
        engine_path = environ.get("VOICEPEAK_PATH")
        if engine_path:
            self.engine.path = engine_path
        play_command = environ.get("VOICEPEAK_PLAY_COMMAND")
        if play_command:
            self.engine.play_command = play_command


def load_config(config_path: Path | None = None) -> BrokerConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Explicit config file. If None, the default locations
            are searched.

    Returns:
        BrokerConfig, with defaults when no file is found.
    """
    paths = [config_path] if config_path else DEFAULT_CONFIG_PATHS

    for path in paths:
        if path.exists():
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            logger.info("Loaded config from: %s", path)
            return BrokerConfig.from_dict(data)

    logger.warning("No config file found, using defaults")
    return BrokerConfig.from_dict({})
