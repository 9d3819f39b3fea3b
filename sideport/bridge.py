"""Bridge - captures the host engine and wires everything to it.

Usage:
    bridge = Bridge(page, settings)
    engine = await bridge.start()
    await bridge.load("https://example.com/my_extension.py")
"""

import asyncio
from typing import Any, Callable, Optional

from sideport.capabilities.network import NetworkFetchCapability
from sideport.config import get_config
from sideport.core import l10n
from sideport.core.errors import AcquisitionFailure, SideportError
from sideport.core.logging import get_logger
from sideport.core.settings import BridgeSettings
from sideport.extensions.loader import SideloadLoader
from sideport.extensions.normalizer import ExtensionNormalizer
from sideport.models.context import BridgeContext
from sideport.models.host import EditorHandle, EngineHandle, Page
from sideport.patches.applicator import PatchApplicator, applicator as default_applicator
from sideport.patches.editor import apply_patches_for_editor
from sideport.patches.engine import apply_patches_for_engine
from sideport.project.codec import ProjectCodec
from sideport.trap.editor import EditorTrap
from sideport.trap.engine import (
    BindingInterceptor,
    ConstructionTrap,
    StateTreeProbe,
    looks_like_engine,
    looks_like_store,
)
from sideport.trap.race import AcquisitionRace, Strategy
from sideport.vm.sandbox import Sandbox

logger = get_logger(__name__)

CONTEXT_GLOBAL = "sideport"


class Bridge:
    """Owns the bridge context for one page."""

    def __init__(
        self,
        page: Page,
        settings: Optional[BridgeSettings] = None,
        applicator: Optional[PatchApplicator] = None,
        network: Optional[NetworkFetchCapability] = None,
        probe_delay: Optional[float] = None,
        open_dashboard: Optional[Callable[[], Any]] = None
    ):
        self.page = page
        self.settings = settings or BridgeSettings()
        self.ctx = BridgeContext(open_dashboard=open_dashboard)
        self._applicator = applicator or default_applicator
        config = get_config().loader
        self._probe_delay = config.probe_delay if probe_delay is None else probe_delay
        if network is None:
            network = NetworkFetchCapability(timeout=config.fetch_timeout)

        sandbox = Sandbox(unrestricted=not self.settings.behavior.restricted_sideload)
        self.normalizer = ExtensionNormalizer(self.ctx)
        self.loader = SideloadLoader(self.ctx, self.normalizer, network=network, sandbox=sandbox)
        self.codec = ProjectCodec(self.ctx, self.loader.sideload_urls)

        self.race: Optional[AcquisitionRace] = None
        self.editor_trap: Optional[EditorTrap] = None
        self.installed: list[str] = []
        self._tasks: list[asyncio.Future] = []

        if self.settings.behavior.expose_context:
            self.page.globals[CONTEXT_GLOBAL] = self

    def _polyfill(self, name: str, value: Any) -> None:
        if self.settings.behavior.polyfill_global_instances and name not in self.page.globals:
            self.page.globals[name] = value

    async def start(self) -> Optional[EngineHandle]:
        """Capture the engine and install the patches.

        Returns:
            The engine, or None when capture is disabled or failed. A failed
            capture leaves the bridge inert; it is never retried.
        """
        if not self.settings.trap.engine:
            logger.info("Engine capture disabled", component="bridge")
            return None

        if self.page.is_loaded():
            logger.warning("Page already loaded, reading the state tree only", component="bridge")
            probe = StateTreeProbe(self.page, delay=0)
            strategies = [Strategy("state-tree", probe.wait)]
        else:
            probe = StateTreeProbe(self.page, delay=self._probe_delay)
            strategies = [
                Strategy("construction", ConstructionTrap(self.page, looks_like_engine, self._applicator).wait),
                Strategy("state-tree", probe.wait),
            ]
            if self.settings.trap.store:
                self._tasks.append(asyncio.ensure_future(self._capture_store()))

        self.race = AcquisitionRace("Engine", strategies)
        try:
            engine = await self.race.run()
        except AcquisitionFailure as e:
            logger.error(f"Failed to capture the engine: {e.message}", component="bridge", details=e.details)
            return None

        if probe.store is not None and self.settings.trap.store:
            self._set_store(probe.store)
        self._on_engine_captured(engine)
        return engine

    def _set_store(self, store: Any) -> None:
        if self.ctx.store is not None:
            return
        self.ctx.store = store
        logger.info("State store is ready", component="bridge")
        self._polyfill("store", store)

    async def _capture_store(self) -> None:
        interceptor = BindingInterceptor.for_binder(self.page.binder, applicator=self._applicator)
        self._set_store(await interceptor.watch(looks_like_store))

    def _on_engine_captured(self, engine: EngineHandle) -> None:
        self.ctx.engine = engine
        self._polyfill("engine", engine)
        l10n.set_locale(engine.get_locale())

        self.editor_trap = EditorTrap(self.page, engine, applicator=self._applicator)
        self.loader.editor_trap = self.editor_trap
        if self.settings.trap.editor:
            self._tasks.append(asyncio.ensure_future(self._capture_editor()))

        if self.settings.behavior.headless:
            logger.warning("Headless mode on, patches are not installed", component="bridge")
            return

        self.installed.extend(apply_patches_for_engine(
            engine,
            self.ctx,
            self.loader,
            self.codec,
            self.settings,
            self._applicator
        ))

    async def _capture_editor(self) -> Optional[EditorHandle]:
        try:
            editor = await self.editor_trap.get()
        except AcquisitionFailure as e:
            logger.error(f"Failed to capture the editor: {e.message}", component="bridge", details=e.details)
            return None

        self.ctx.editor = editor
        logger.info("Editor is ready", component="bridge")
        self._polyfill("editor", editor)

        if not self.settings.behavior.headless:
            self.installed.extend(apply_patches_for_editor(editor, self.ctx, self.settings, self._applicator))
        return editor

    def load(self, url: str) -> asyncio.Future:
        """Declare ``url`` and sideload it.

        Raises:
            SideportError: the engine has not been captured yet.
        """
        if not self.ctx.captured:
            raise SideportError(
                "Engine not captured yet",
                suggestion="Await Bridge.start() before loading extensions"
            )
        self.ctx.declare(url)
        return self.loader.load(url)

    def stop(self) -> None:
        """Cancel background captures still waiting."""
        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks.clear()
