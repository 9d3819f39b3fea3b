"""Patch applicator - wraps methods of live host objects in place.

A mixin is a mapping of member name to replacement. Each replacement is
called as ``replacement(self, original, *args, **kwargs)`` where ``self`` is
the invocation context and ``original`` is the previous implementation bound
to that context, or ``None`` when the target had no such member.

Targets can be:
- classes, so every instance shares the wrapper
- plain objects or modules
- mutable mappings used as dispatch tables
"""

import inspect
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from sideport.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PatchRegistration:
    """One installed wrapper."""
    target: Any
    name: str
    original: Optional[Callable[..., Any]]
    wrapper: Callable[..., Any]


def _bind(original: Any, instance: Any) -> Optional[Callable[..., Any]]:
    if original is None:
        return None
    if hasattr(original, "__get__"):
        return original.__get__(instance, type(instance))
    return original


class PatchApplicator:
    """Installs wrappers at most once per (target, member) pair."""

    def __init__(self):
        # Keyed by identity; the registration holds the target so ids stay unique.
        self._registry: dict[tuple[int, str], PatchRegistration] = {}

    def apply_to(self, target: Any, mixins: Mapping[str, Callable[..., Any]]) -> None:
        """Wrap each named member of ``target`` with its replacement."""
        for name, replacement in mixins.items():
            key = (id(target), name)
            if key in self._registry:
                logger.debug(f"Already patched, skipping: {name}", component="patches")
                continue

            original = self._lookup(target, name)
            wrapper = self._make_wrapper(target, name, original, replacement)
            self._install(target, name, wrapper)
            self._registry[key] = PatchRegistration(target, name, original, wrapper)

    def patch(self, target: Any, name: Optional[str] = None):
        """Decorator form of :meth:`apply_to` for a single member.

        Example:
            @applicator.patch(engine.extension_manager)
            def load_extension_url(self, original, url):
                ...
        """
        def decorator(replacement: Callable[..., Any]) -> Callable[..., Any]:
            self.apply_to(target, {name or replacement.__name__: replacement})
            return replacement
        return decorator

    def is_patched(self, target: Any, name: str) -> bool:
        return (id(target), name) in self._registry

    def original_of(self, target: Any, name: str) -> Optional[Callable[..., Any]]:
        registration = self._registry.get((id(target), name))
        return registration.original if registration else None

    @property
    def registrations(self) -> list[PatchRegistration]:
        return list(self._registry.values())

    @staticmethod
    def _lookup(target: Any, name: str) -> Any:
        if isinstance(target, MutableMapping):
            return target.get(name)
        if isinstance(target, type):
            # Raw class attribute, so descriptors can be bound per call.
            return inspect.getattr_static(target, name, None)
        return getattr(target, name, None)

    @staticmethod
    def _make_wrapper(
        target: Any,
        name: str,
        original: Any,
        replacement: Callable[..., Any]
    ) -> Callable[..., Any]:
        if isinstance(target, type):
            def wrapper(instance, *args, **kwargs):
                return replacement(instance, _bind(original, instance), *args, **kwargs)
        else:
            def wrapper(*args, **kwargs):
                return replacement(target, original, *args, **kwargs)

        wrapper.__name__ = name
        owner = target if isinstance(target, type) else type(target)
        wrapper.__qualname__ = f"{owner.__name__}.{name}"
        wrapper.__doc__ = getattr(replacement, "__doc__", None)
        wrapper.__wrapped__ = original
        return wrapper

    @staticmethod
    def _install(target: Any, name: str, wrapper: Callable[..., Any]) -> None:
        if isinstance(target, MutableMapping):
            target[name] = wrapper
        else:
            setattr(target, name, wrapper)


# Process-wide applicator
applicator = PatchApplicator()


def apply_to(target: Any, mixins: Mapping[str, Callable[..., Any]]) -> None:
    applicator.apply_to(target, mixins)
