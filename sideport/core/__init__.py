"""Core package - errors, logging, settings and localization."""

from .errors import SideportError
from .logging import get_logger, setup_logging
from .settings import BridgeSettings, SettingsManager

__all__ = ["SideportError", "get_logger", "setup_logging", "BridgeSettings", "SettingsManager"]
