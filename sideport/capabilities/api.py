"""The capability object injected into sideloaded scripts as ``api``.

A script sees nothing of the bridge except this object: the block enums,
``Cast``, the captured engine, a translation helper, network access and
the way to register its extension.
"""

import asyncio
from typing import Any, Callable, Mapping, Optional

import httpx

from sideport.core import l10n
from sideport.core.logging import get_logger
from sideport.models.extension import ArgumentType, BlockType, ReporterScope, TargetType
from .cast import Cast
from .network import NetworkFetchCapability

logger = get_logger(__name__)


def _generate_id(default: str) -> str:
    return f"_{default}"


class Translate:
    """``api.translate``: format messages in the engine's current locale.

    Follows the engine's ``LOCALE_CHANGED`` events, so extensions always
    translate into the locale the host is showing.
    """

    def __init__(self, engine: Any = None):
        self._formatter = l10n.formatter.namespace()
        self._translations: dict[str, dict[str, str]] = {}
        self._locale = engine.get_locale() if engine is not None else l10n.get_locale()
        self.setup({})

        if engine is not None:
            engine.on("LOCALE_CHANGED", self._on_locale_changed)

    @property
    def language(self) -> str:
        return self._locale

    def setup(self, translations: Optional[dict[str, dict[str, str]]]) -> None:
        """Replace the translation tables; ``None`` keeps the stored ones."""
        if translations:
            self._translations = translations
        self._formatter.setup(
            locale=self._locale,
            translations=self._translations,
            generate_id=_generate_id
        )

    def _on_locale_changed(self, locale: str) -> None:
        self._locale = locale
        self.setup(None)

    def __call__(self, message: Any, args: Optional[Mapping[str, Any]] = None) -> str:
        if isinstance(message, str):
            message = {"default": message}
        elif not isinstance(message, Mapping):
            raise TypeError("unsupported data type in translate()")
        return self._formatter.format(message, args)


class ExtensionsAPI:
    """``api.extensions``."""

    unsandboxed = True
    sideport = True

    def __init__(self, register: Callable[[Any], Any]):
        self._register = register

    def register(self, descriptor: Any) -> Any:
        return self._register(descriptor)


class GuiAPI:
    """``api.gui``: access to the block editor."""

    def __init__(self, editor_trap: Any = None):
        self._editor_trap = editor_trap

    def get_editor(self) -> asyncio.Future:
        """Awaitable resolving to the editor handle."""
        if self._editor_trap is None:
            future = asyncio.get_running_loop().create_future()
            future.set_result(None)
            return future
        return self._editor_trap.get()

    def get_editor_eagerly(self) -> Any:
        if self._editor_trap is None:
            return None
        return self._editor_trap.get_eagerly()


class HostAPI:
    """Everything a sideloaded script may use."""

    ArgumentType = ArgumentType
    BlockType = BlockType
    TargetType = TargetType
    ReporterScope = ReporterScope
    Cast = Cast

    def __init__(
        self,
        register: Callable[[Any], Any],
        engine: Any = None,
        network: Optional[NetworkFetchCapability] = None,
        editor_trap: Any = None
    ):
        self.extensions = ExtensionsAPI(register)
        self.engine = engine
        self.translate = Translate(engine)
        self.gui = GuiAPI(editor_trap)
        self._network = network or NetworkFetchCapability()

    async def fetch(self, url: str, **kwargs: Any) -> httpx.Response:
        logger.debug(f"Extension fetch: {url}", component="api", url=url)
        return await self._network.fetch(url, **kwargs)

    def can_fetch(self, url: str) -> bool:
        return self._network.can_fetch(url)


def make_host_api(
    register: Callable[[Any], Any],
    engine: Any = None,
    network: Optional[NetworkFetchCapability] = None,
    editor_trap: Any = None
) -> HostAPI:
    """Create a capability object whose ``extensions.register`` calls ``register``."""
    return HostAPI(register, engine=engine, network=network, editor_trap=editor_trap)
