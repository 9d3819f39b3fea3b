"""Narrow interfaces of the host objects the bridge works with.

The host never hands these out; the bridge captures them and only relies on
the members listed here.
"""

from typing import Any, Callable, MutableMapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class Runtime(Protocol):
    _primitives: MutableMapping[str, Callable[..., Any]]

    def _register_extension_primitives(self, metadata: Any) -> None: ...

    def _refresh_extension_primitives(self, metadata: Any) -> None: ...

    def get_editing_target(self) -> Any: ...

    def get_target_for_stage(self) -> Any: ...

    def make_message_context_for_target(self, target: Any = None) -> Any: ...


@runtime_checkable
class ExtensionManager(Protocol):
    def load_extension_url(self, url: str) -> Any: ...

    def refresh_blocks(self, extension_id: Optional[str] = None) -> Any: ...


@runtime_checkable
class EngineHandle(Protocol):
    """The host's single execution engine."""
    runtime: Runtime
    extension_manager: ExtensionManager

    def get_locale(self) -> str: ...

    def on(self, event: str, listener: Callable[..., Any]) -> Any: ...

    def emit(self, event: str, *args: Any) -> Any: ...

    def to_json(self, target_id: Optional[str] = None) -> str: ...

    def deserialize_project(self, project_json: dict, *args: Any, **kwargs: Any) -> Any: ...

    def set_locale(self, locale: str, messages: Any = None) -> Any: ...


@runtime_checkable
class Workspace(Protocol):
    def register_button_callback(self, key: str, callback: Callable[..., Any]) -> None: ...

    def get_toolbox(self) -> Any: ...


@runtime_checkable
class EditorHandle(Protocol):
    """The companion visual-block editor."""
    procedures: Any

    def get_main_workspace(self) -> Optional[Workspace]: ...


@runtime_checkable
class Page(Protocol):
    """The environment the bridge starts in."""
    globals: MutableMapping[str, Any]
    binder: Any

    def is_loaded(self) -> bool: ...

    def state_root(self) -> Any: ...
