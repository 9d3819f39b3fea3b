"""Settings store for the bridge.

Handles loading, saving, and validating the switches the bridge consults
while capturing the host and installing patches.
"""

import json
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field, ValidationError

from sideport.core.errors import ConfigError
from sideport.core.logging import get_logger

logger = get_logger(__name__)

# Every patch the bridge knows how to install, keyed by its mixin flag.
MIXIN_NAMES = (
    "engine.extension_manager.load_extension_url",
    "engine.extension_manager.refresh_blocks",
    "engine.to_json",
    "engine.deserialize_project",
    "engine._load_extensions",
    "engine.set_locale",
    "engine.runtime._primitives.argument_reporter_boolean",
    "engine.runtime._convert_for_editor",
    "engine.runtime._convert_button_for_editor",
    "editor.procedures.add_create_button_",
)


def default_mixins() -> dict[str, bool]:
    return {name: True for name in MIXIN_NAMES}


class TrapSettings(BaseModel):
    """Which host handles the bridge tries to capture."""
    engine: bool = Field(default=True, description="Capture the execution engine")
    editor: bool = Field(default=True, description="Capture the block editor")
    store: bool = Field(default=True, description="Capture the page state store")


class BehaviorSettings(BaseModel):
    """Bridge behaviour switches."""
    headless: bool = Field(default=False, description="Capture only, install no patches")
    redirect_declared: bool = Field(default=True, description="Sideload declared extension ids")
    redirect_url: bool = Field(default=True, description="Sideload any extension given by URL")
    expose_context: bool = Field(default=False, description="Publish the bridge context as a page global")
    polyfill_global_instances: bool = Field(default=True, description="Publish captured handles as page globals")
    restricted_sideload: bool = Field(default=False, description="Run sideloaded code under RestrictedPython")


class BridgeSettings(BaseModel):
    """Complete settings document."""
    trap: TrapSettings = Field(default_factory=TrapSettings)
    behavior: BehaviorSettings = Field(default_factory=BehaviorSettings)
    mixins: dict[str, bool] = Field(
        default_factory=default_mixins,
        description="Per-patch enable flags; absent means disabled"
    )

    def mixin_enabled(self, name: str) -> bool:
        return bool(self.mixins.get(name, False))


class SettingsManager:
    """Manages the settings file."""

    def __init__(self, settings_path: Path):
        self.settings_path = settings_path
        self._settings: Optional[BridgeSettings] = None

    @property
    def settings(self) -> BridgeSettings:
        """Get the current settings, loading them on first use."""
        if self._settings is None:
            self.load()
        return self._settings

    def load(self) -> BridgeSettings:
        """Load settings from disk, falling back to defaults."""
        if not self.settings_path.exists():
            self._settings = BridgeSettings()
            return self._settings

        try:
            with open(self.settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict) and isinstance(data.get("mixins"), dict):
                # Flags missing from the file keep their defaults
                data["mixins"] = {**default_mixins(), **data["mixins"]}
            self._settings = BridgeSettings(**data)
        except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning(
                f"Error loading settings, using defaults: {e}",
                component="settings",
                path=str(self.settings_path)
            )
            self._settings = BridgeSettings()
        return self._settings

    def save(self, settings: BridgeSettings) -> None:
        """Save settings to disk."""
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.settings_path, "w", encoding="utf-8") as f:
            f.write(settings.model_dump_json(indent=2))

        self._settings = settings

    def exists(self) -> bool:
        """Check if a settings file exists."""
        return self.settings_path.exists()

    def update(self, **kwargs) -> BridgeSettings:
        """Update top-level settings sections with new values."""
        current_data = self.settings.model_dump()
        mixins = kwargs.pop("mixins", None)
        if isinstance(mixins, dict):
            current_data["mixins"].update(mixins)
        elif mixins is not None:
            current_data["mixins"] = mixins
        current_data.update(kwargs)

        try:
            new_settings = BridgeSettings(**current_data)
        except ValidationError as e:
            raise ConfigError("Invalid settings update", cause=e) from e
        self.save(new_settings)
        return new_settings
