"""Bridge context shared by every component."""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .host import EditorHandle, EngineHandle


@dataclass
class BridgeContext:
    """State owned by the bridge for the lifetime of the page.

    Constructed by whoever starts the capture and passed by reference to
    the loader, the codec and the patches.
    """
    engine: Optional[EngineHandle] = None
    editor: Optional[EditorHandle] = None
    store: Any = None
    declared_ids: list[str] = field(default_factory=list)
    id_to_url: dict[str, str] = field(default_factory=dict)
    open_dashboard: Optional[Callable[[], Any]] = None

    @property
    def captured(self) -> bool:
        return self.engine is not None

    def declare(self, *ids: str) -> None:
        """Mark ids (or URLs) as sideloaded, keeping first-seen order."""
        for extension_id in ids:
            if extension_id and extension_id not in self.declared_ids:
                self.declared_ids.append(extension_id)

    def is_declared(self, extension_id: str) -> bool:
        return extension_id in self.declared_ids

    def map_url(self, extension_id: str, url: str) -> None:
        self.id_to_url[extension_id] = url

    def resolve_url(self, id_or_url: str) -> str:
        return self.id_to_url.get(id_or_url, id_or_url)
