"""Lazy capture of the block editor.

The editor may not exist when the engine is captured, so the first caller
starts a race between construction interception and a poll of the places
the editor usually shows up. The resulting future is cached: later callers
share the pending or resolved future.
"""

import asyncio
from typing import Any, Optional

from sideport.core.logging import get_logger
from sideport.models.host import EditorHandle, EngineHandle, Page
from sideport.patches.applicator import PatchApplicator
from .engine import ConstructionTrap, resolve_path
from .race import AcquisitionRace, Strategy

logger = get_logger(__name__)

POLL_INTERVAL = 0.1
EDITOR_PATHS = (("editor",), ("runtime", "editor"))
EDITOR_GLOBALS = ("editor", "blocks")


def looks_like_editor(candidate: Any) -> bool:
    return (
        callable(getattr(candidate, "get_main_workspace", None))
        and hasattr(candidate, "procedures")
    )


class EditorTrap:
    """Singleton future for the editor handle."""

    def __init__(
        self,
        page: Page,
        engine: EngineHandle,
        poll_interval: float = POLL_INTERVAL,
        applicator: Optional[PatchApplicator] = None
    ):
        self._page = page
        self._engine = engine
        self._poll_interval = poll_interval
        self._applicator = applicator
        self._future: Optional[asyncio.Future] = None
        self.cache: Optional[EditorHandle] = None

    def get(self) -> asyncio.Future:
        """The shared editor future; acquisition starts on first call."""
        if self._future is None:
            self._future = asyncio.ensure_future(self._acquire())
            self._future.add_done_callback(self._remember)
        return self._future

    def get_eagerly(self) -> Optional[EditorHandle]:
        return self.cache

    def _remember(self, future: asyncio.Future) -> None:
        if not future.cancelled() and future.exception() is None:
            self.cache = future.result()

    async def _acquire(self) -> EditorHandle:
        race = AcquisitionRace("Editor", [
            Strategy("construction", ConstructionTrap(self._page, looks_like_editor, self._applicator).wait),
            Strategy("poll", self._poll),
        ])
        return await race.run()

    def locate(self) -> Optional[EditorHandle]:
        for path in EDITOR_PATHS:
            candidate = resolve_path(self._engine, path)
            if candidate is not None and looks_like_editor(candidate):
                return candidate
        for name in EDITOR_GLOBALS:
            candidate = self._page.globals.get(name)
            if candidate is not None and looks_like_editor(candidate):
                return candidate
        return None

    async def _poll(self) -> EditorHandle:
        while True:
            editor = self.locate()
            if editor is not None:
                return editor
            await asyncio.sleep(self._poll_interval)
