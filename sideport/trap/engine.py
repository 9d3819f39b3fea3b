"""Engine capture strategies.

Two ways of finding the engine:
- construction interception: watch the host's binding primitive and
  recognize the engine among the objects it binds
- state-tree probe: after a delay, walk the page's state tree along a
  known path
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Callable, Optional, Sequence

from sideport.core.logging import get_logger
from sideport.models.host import Page
from sideport.patches.applicator import PatchApplicator, applicator as default_applicator

logger = get_logger(__name__)

Predicate = Callable[[Any], bool]

PROBE_DELAY = 1.0
STATE_PATH = ("get_state()", "gui", "vm")


def looks_like_engine(candidate: Any) -> bool:
    runtime = getattr(candidate, "runtime", None)
    return (
        runtime is not None
        and hasattr(candidate, "extension_manager")
        and callable(getattr(candidate, "get_locale", None))
        and callable(getattr(runtime, "_register_extension_primitives", None))
    )


def looks_like_store(candidate: Any) -> bool:
    return (
        callable(getattr(candidate, "get_state", None))
        and callable(getattr(candidate, "dispatch", None))
        and callable(getattr(candidate, "subscribe", None))
    )


class BindingInterceptor:
    """Feeds everything the host binds to registered watchers.

    One interceptor exists per binder; the wrapper is installed once and
    stays for the page's lifetime. Watchers are removed once resolved.
    """

    _instances: dict[int, "BindingInterceptor"] = {}

    def __init__(self, binder: Any, method: str = "bind", applicator: Optional[PatchApplicator] = None):
        self._binder = binder
        self._method = method
        self._applicator = applicator or default_applicator
        self._watchers: list[tuple[Predicate, asyncio.Future]] = []
        self._install()

    @classmethod
    def for_binder(
        cls,
        binder: Any,
        method: str = "bind",
        applicator: Optional[PatchApplicator] = None
    ) -> "BindingInterceptor":
        key = id(binder)
        interceptor = cls._instances.get(key)
        if interceptor is None or interceptor._binder is not binder:
            interceptor = cls(binder, method, applicator)
            cls._instances[key] = interceptor
        return interceptor

    @property
    def watching(self) -> int:
        return len(self._watchers)

    def watch(self, predicate: Predicate) -> asyncio.Future:
        """Future resolved with the first bound object ``predicate`` accepts."""
        future = asyncio.get_running_loop().create_future()
        self._watchers.append((predicate, future))
        return future

    def _install(self) -> None:
        interceptor = self

        def bind(this, original, *args, **kwargs):
            result = original(*args, **kwargs) if original is not None else None
            interceptor._inspect((*args, result))
            return result

        self._applicator.apply_to(self._binder, {self._method: bind})

    def _inspect(self, candidates: Sequence[Any]) -> None:
        if not self._watchers:
            return
        for predicate, future in self._watchers:
            if future.done():
                continue
            for candidate in candidates:
                try:
                    matched = predicate(candidate)
                except Exception as e:
                    # Host objects are duck-typed; a probing predicate must not break binding.
                    logger.debug(f"Predicate raised on bound object: {e}", component="trap")
                    continue
                if matched:
                    future.set_result(candidate)
                    break
        self._watchers = [(p, f) for p, f in self._watchers if not f.done()]


def resolve_path(root: Any, path: Sequence[str]) -> Any:
    """Walk ``path`` from ``root``; a step ending in ``()`` is called."""
    node = root
    for step in path:
        if node is None:
            return None
        call = step.endswith("()")
        key = step[:-2] if call else step
        if isinstance(node, Mapping):
            node = node.get(key)
        else:
            node = getattr(node, key, None)
        if call:
            node = node() if callable(node) else None
    return node


class StateTreeProbe:
    """Fallback: read the engine out of the rendered page's state tree."""

    def __init__(self, page: Page, path: Sequence[str] = STATE_PATH, delay: float = PROBE_DELAY):
        self._page = page
        self._path = tuple(path)
        self.delay = delay
        self.store: Any = None

    def probe(self) -> Any:
        store = self._page.state_root()
        if store is None:
            return None
        engine = resolve_path(store, self._path)
        if engine is None:
            return None
        logger.info("Engine detected in page state tree", component="trap", strategy="state-tree")
        self.store = store
        return engine

    async def wait(self) -> Any:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.probe()


class ConstructionTrap:
    """Construction interception for a single kind of handle."""

    def __init__(self, page: Page, predicate: Predicate = looks_like_engine, applicator: Optional[PatchApplicator] = None):
        self._page = page
        self._predicate = predicate
        self._applicator = applicator

    async def wait(self) -> Any:
        interceptor = BindingInterceptor.for_binder(self._page.binder, applicator=self._applicator)
        return await interceptor.watch(self._predicate)
