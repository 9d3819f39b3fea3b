"""Data models for Sideport."""

from .context import BridgeContext
from .extension import (
    ArgumentType,
    BlockEntry,
    BlockType,
    ExtensionMetadata,
    LoadedExtensionRecord,
    MenuEntry,
    ReporterScope,
    TargetType,
)

__all__ = [
    "BridgeContext",
    "ArgumentType",
    "BlockEntry",
    "BlockType",
    "ExtensionMetadata",
    "LoadedExtensionRecord",
    "MenuEntry",
    "ReporterScope",
    "TargetType",
]
