"""Extension normalizer - turns a raw descriptor into canonical metadata.

Normalization is a pure function of the descriptor's info and may run many
times (every refresh re-normalizes). Bad block entries and menus are
logged and dropped one by one; the rest of the descriptor still loads.
"""

import re
from collections.abc import Mapping
from functools import partial
from typing import Any, Callable, Optional

from pydantic import ValidationError

from sideport.core.errors import EmptyMenuError, InvalidIdError, MissingOpcodeError, SideportError
from sideport.core.l10n import maybe_format_message
from sideport.core.logging import get_logger
from sideport.models.context import BridgeContext
from sideport.models.extension import (
    BlockEntry,
    BlockType,
    ExtensionMetadata,
    MenuEntry,
    NON_OPCODE_TYPES,
    PREDEFINED_CALLBACK_KEYS,
    SEPARATOR,
)

logger = get_logger(__name__)

EXTENSION_ID = re.compile(r"^[a-z0-9]+$", re.IGNORECASE)
_UNSAFE_ID_CHARS = re.compile(r'[<"&]')


def sanitize_id(text: Any) -> str:
    return _UNSAFE_ID_CHARS.sub("_", str(text))


def _format_menu_item(item: Any) -> Any:
    item = maybe_format_message(item)
    if isinstance(item, Mapping):
        return (maybe_format_message(item.get("text")), item.get("value"))
    if isinstance(item, str):
        return (item, item)
    if isinstance(item, (list, tuple)) and len(item) == 2:
        return tuple(item)
    return item


class ExtensionNormalizer:
    """Normalizes extension descriptors against the bridge context."""

    def __init__(self, ctx: BridgeContext):
        self._ctx = ctx

    def normalize(self, descriptor: Any, info: Optional[Mapping[str, Any]] = None) -> ExtensionMetadata:
        """Build canonical metadata from ``descriptor.get_info()``.

        Raises:
            InvalidIdError: the id is missing or not [a-z0-9]+.
        """
        info = dict(info if info is not None else descriptor.get_info())

        extension_id = info.get("id")
        if not isinstance(extension_id, str) or not EXTENSION_ID.match(extension_id):
            raise InvalidIdError(extension_id=extension_id)

        if info.get("name") is None:
            info["name"] = extension_id
        info["blocks"] = self._prepare_blocks(descriptor, extension_id, info.get("blocks") or [])
        info["menus"] = self._prepare_menus(descriptor, extension_id, info.get("menus") or {})
        info["target_types"] = list(info.get("target_types") or [])

        return ExtensionMetadata.model_validate(info)

    def _prepare_blocks(self, descriptor: Any, extension_id: str, raw_blocks: Any) -> list[Any]:
        blocks = []
        for raw in raw_blocks:
            try:
                blocks.append(self.prepare_block(descriptor, raw))
            except (SideportError, ValidationError, TypeError, ValueError) as e:
                logger.error(
                    f"Error processing block: {e}",
                    component="normalizer",
                    extension=extension_id,
                    block=repr(raw)
                )
        return blocks

    def prepare_block(self, descriptor: Any, raw: Any) -> Any:
        if isinstance(raw, str) and raw == SEPARATOR:
            return SEPARATOR
        if isinstance(raw, BlockEntry):
            raw = raw.model_dump()
        if not isinstance(raw, Mapping):
            raise TypeError(f"Block entry must be a mapping, got {type(raw).__name__}")

        entry = BlockEntry.model_validate(dict(raw))
        if entry.opcode:
            entry.opcode = sanitize_id(entry.opcode)
        entry.text = entry.text or entry.opcode

        if entry.block_type in NON_OPCODE_TYPES and entry.opcode:
            logger.warning(
                f'Ignoring opcode "{entry.opcode}" for {entry.block_type.value} with text: {entry.text}',
                component="normalizer"
            )
            entry.opcode = None

        if entry.block_type is BlockType.EVENT and entry.func:
            logger.warning(
                f'Ignoring function "{entry.func}" for event block {entry.opcode}',
                component="normalizer",
                opcode=entry.opcode
            )
        elif entry.block_type is BlockType.BUTTON:
            if entry.func and entry.func not in PREDEFINED_CALLBACK_KEYS:
                entry.call = self._button_invoker(descriptor, entry.func)
        elif entry.is_regular:
            if not entry.opcode:
                raise MissingOpcodeError(entry=dict(raw))
            entry.func = sanitize_id(entry.func) if entry.func else entry.opcode
            entry.call = self._block_invoker(descriptor, entry)

        return entry

    @staticmethod
    def _warn_if_missing(descriptor: Any, func_name: str) -> None:
        # The method may still show up later as a dynamic attribute.
        if not callable(getattr(descriptor, func_name, None)):
            logger.warning(
                f"Could not find extension block function called {func_name}",
                component="normalizer"
            )

    def _block_invoker(self, descriptor: Any, entry: BlockEntry) -> Callable[..., Any]:
        func_name = entry.func
        self._warn_if_missing(descriptor, func_name)

        if entry.is_dynamic:
            def block_info_for(args: Any) -> Any:
                mutation = args.get("mutation") if isinstance(args, Mapping) else None
                return mutation.get("block_info") if isinstance(mutation, Mapping) else None
        else:
            def block_info_for(args: Any) -> Any:
                return entry

        def call(args: Any = None, util: Any = None) -> Any:
            return getattr(descriptor, func_name)(args, util, block_info_for(args))

        return call

    def _button_invoker(self, descriptor: Any, func_name: str) -> Callable[[], Any]:
        self._warn_if_missing(descriptor, func_name)

        def call() -> Any:
            return getattr(descriptor, func_name)()

        return call

    def _prepare_menus(self, descriptor: Any, extension_id: str, raw_menus: Any) -> dict[str, MenuEntry]:
        menus = {}
        for name, menu in dict(raw_menus).items():
            try:
                menus[name] = self.prepare_menu(descriptor, menu)
            except (ValidationError, TypeError, ValueError) as e:
                logger.error(
                    f"Error processing menu {name}: {e}",
                    component="normalizer",
                    extension=extension_id
                )
        return menus

    def prepare_menu(self, descriptor: Any, menu: Any) -> MenuEntry:
        if isinstance(menu, MenuEntry):
            menu = menu.model_dump()
        # Short form: the menu is just its items.
        if not isinstance(menu, Mapping) or "items" not in menu:
            menu = {"items": menu}

        entry = MenuEntry.model_validate(dict(menu))
        if isinstance(entry.items, str):
            entry.resolve = partial(self.menu_items, descriptor, entry.items)
        return entry

    def menu_items(self, descriptor: Any, func_name: str) -> list[Any]:
        """Resolve a dynamic menu for the target currently being edited.

        Raises:
            EmptyMenuError: the descriptor returned no items.
        """
        target_id = None
        engine = self._ctx.engine
        if engine is not None:
            runtime = engine.runtime
            target = runtime.get_editing_target() or runtime.get_target_for_stage()
            target_id = getattr(target, "id", None) if target is not None else None
            runtime.make_message_context_for_target(target)

        items = getattr(descriptor, func_name)(target_id)
        if not items:
            raise EmptyMenuError(
                f"Extension menu returned no items: {func_name}",
                menu_function=func_name
            )
        return [_format_menu_item(item) for item in items]
