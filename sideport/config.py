"""Centralized environment configuration for Sideport.

This module provides typed configuration loaded from environment
variables and .env files. Bridge behaviour switches live in the
settings store (see ``sideport.core.settings``).
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "text"  # "json" or "text"
    file_enabled: bool = False
    console_enabled: bool = True
    log_dir: Optional[Path] = None

    def __post_init__(self):
        self.level = os.getenv("SIDEPORT_LOG_LEVEL", self.level).upper()
        self.format = os.getenv("SIDEPORT_LOG_FORMAT", self.format).lower()
        self.file_enabled = os.getenv("SIDEPORT_LOG_FILE", "false").lower() == "true"
        self.console_enabled = os.getenv("SIDEPORT_LOG_CONSOLE", "true").lower() == "true"
        log_dir = os.getenv("SIDEPORT_LOG_DIR")
        if log_dir:
            self.log_dir = Path(log_dir)


@dataclass
class PathConfig:
    """Path configuration."""
    settings_path: Path = field(default_factory=lambda: Path.home() / ".sideport" / "settings.json")

    def __post_init__(self):
        override = os.getenv("SIDEPORT_SETTINGS_PATH")
        if override:
            self.settings_path = Path(override)


@dataclass
class LoaderConfig:
    """Sideload fetch configuration."""
    fetch_timeout: float = 30.0
    probe_delay: float = 1.0

    def __post_init__(self):
        self.fetch_timeout = float(os.getenv("SIDEPORT_FETCH_TIMEOUT", self.fetch_timeout))
        self.probe_delay = float(os.getenv("SIDEPORT_PROBE_DELAY", self.probe_delay))


@dataclass
class Config:
    """Main configuration container."""
    log: LogConfig = field(default_factory=LogConfig)
    paths: PathConfig = field(default_factory=PathConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
