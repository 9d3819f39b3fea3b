"""Engine patches.

Installed once the engine is captured. Each patch is gated by its own
mixin flag in the settings, so any one of them can be switched off.
"""

import asyncio
import inspect
from collections.abc import Mapping
from typing import Any, Optional
from urllib.parse import urlparse
from xml.sax.saxutils import escape

from sideport.core import l10n
from sideport.core.logging import get_logger
from sideport.core.settings import BridgeSettings
from sideport.extensions.loader import SideloadLoader
from sideport.models.context import BridgeContext
from sideport.models.extension import BlockType, PREDEFINED_CALLBACK_KEYS
from sideport.project.codec import ProjectCodec
from .applicator import PatchApplicator, applicator as default_applicator

logger = get_logger(__name__)

DETECTION_FLAG = "🧐 Sideport?"
INTERNAL_CATEGORY = "sideportInternal"
LOCALE_CHANGED = "LOCALE_CHANGED"


def xml_escape(text: Any) -> str:
    return escape(str(text), {'"': "&quot;", "'": "&apos;"})


def is_url(value: Any) -> bool:
    """Whether ``value`` parses as an absolute URL rather than a bare id."""
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    # Single letters are drive names, not schemes.
    return len(parsed.scheme) > 1 and bool(parsed.netloc or parsed.path)


def check_detection_flag(flag: str) -> Optional[bool]:
    """True for the flag projects use to detect the bridge, else None."""
    if flag == DETECTION_FLAG:
        return True
    return None


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _done(value: Any = None) -> asyncio.Future:
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future


def _field(info: Any, name: str, default: Any = None) -> Any:
    if isinstance(info, Mapping):
        return info.get(name, default)
    return getattr(info, name, default)


def _discard(collection: Any, item: Any) -> None:
    if hasattr(collection, "discard"):
        collection.discard(item)
    elif item in collection:
        collection.remove(item)


def apply_patches_for_engine(
    engine: Any,
    ctx: BridgeContext,
    loader: SideloadLoader,
    codec: ProjectCodec,
    settings: BridgeSettings,
    applicator: Optional[PatchApplicator] = None
) -> list[str]:
    """Install every enabled engine patch.

    Returns:
        Names of the mixins that were installed.
    """
    applicator = applicator or default_applicator
    behavior = settings.behavior
    installed: list[str] = []

    def enabled(name: str) -> bool:
        if settings.mixin_enabled(name):
            installed.append(name)
            logger.patch_installed(name)
            return True
        return False

    if enabled("engine.extension_manager.load_extension_url"):
        @applicator.patch(engine.extension_manager)
        def load_extension_url(this, original, extension_url):
            # Saved projects refer to sideloaded extensions by id.
            extension_url = ctx.resolve_url(extension_url)

            if loader.is_loaded(extension_url):
                return _done()

            if behavior.redirect_declared and ctx.is_declared(extension_url):
                logger.info(f"Redirecting declared extension {extension_url}", component="patches", url=extension_url)
                return loader.load(extension_url)

            if behavior.redirect_url and is_url(extension_url):
                ctx.declare(extension_url)
                logger.info(f"Redirecting URL {extension_url}", component="patches", url=extension_url)
                return loader.load(extension_url)

            return original(extension_url) if original is not None else None

    if enabled("engine.extension_manager.refresh_blocks"):
        # Sideloaded extensions are not managed by the extension manager.
        @applicator.patch(engine.extension_manager)
        async def refresh_blocks(this, original, extension_id=None):
            if extension_id:
                if loader.refresh(extension_id):
                    return None
                return await _maybe_await(original(extension_id)) if original is not None else None

            result = await _maybe_await(original(extension_id)) if original is not None else None
            loader.refresh()
            return result

    if enabled("engine.to_json"):
        @applicator.patch(engine)
        def to_json(this, original, target_id=None):
            return codec.encode_json(original(target_id))

    if enabled("engine.deserialize_project"):
        @applicator.patch(engine)
        def deserialize_project(this, original, project_json, *args, **kwargs):
            codec.decode(project_json)
            return original(project_json, *args, **kwargs) if original is not None else None

    if callable(getattr(engine, "_load_extensions", None)) and enabled("engine._load_extensions"):
        @applicator.patch(engine)
        async def _load_extensions(this, original, extension_ids, extension_urls=None, *args, **kwargs):
            sideloads = []
            for extension_id in list(extension_ids):
                if ctx.is_declared(extension_id):
                    result = engine.extension_manager.load_extension_url(extension_id)
                    if inspect.isawaitable(result):
                        sideloads.append(result)
                    _discard(extension_ids, extension_id)

            await asyncio.gather(
                _maybe_await(original(extension_ids, extension_urls, *args, **kwargs)),
                *sideloads
            )

    if enabled("engine.set_locale"):
        @applicator.patch(engine)
        def set_locale(this, original, locale, messages=None):
            l10n.set_locale(locale)
            engine.emit(LOCALE_CHANGED, locale)
            return original(locale, messages) if original is not None else None

    runtime = engine.runtime

    if enabled("engine.runtime._primitives.argument_reporter_boolean"):
        @applicator.patch(runtime._primitives)
        def argument_reporter_boolean(this, original, args, util):
            flag = str(args.get("VALUE"))
            value = util.get_param(flag)
            if value is None:
                detected = check_detection_flag(flag)
                if detected is not None:
                    return detected
                return original(args, util) if original is not None else None
            return value

    if enabled("engine.runtime._convert_for_editor"):
        @applicator.patch(runtime)
        def _convert_for_editor(this, original, block_info, category_info=None):
            if not isinstance(block_info, str):
                block_type = _field(block_info, "block_type")
                if block_type == BlockType.LABEL:
                    text = l10n.maybe_format_message(_field(block_info, "text"))
                    return {"info": block_info, "xml": f'<label text="{xml_escape(text)}"/>'}
                if block_type == BlockType.XML:
                    return {"info": block_info, "xml": _field(block_info, "xml")}

                extensions = _field(block_info, "extensions")
                if extensions and original is not None:
                    converted = original(block_info, category_info)
                    json_extensions = converted["json"].setdefault("extensions", [])
                    for extension in extensions:
                        if extension not in json_extensions:
                            json_extensions.append(extension)
                    return converted
            return original(block_info, category_info) if original is not None else None

    if enabled("engine.runtime._convert_button_for_editor"):
        @applicator.patch(runtime)
        def _convert_button_for_editor(this, original, button_info, category_info=None):
            editor = ctx.editor
            workspace = editor.get_main_workspace() if editor is not None else None
            func = _field(button_info, "func")
            if workspace is not None and func and func not in PREDEFINED_CALLBACK_KEYS:
                message_context = this.make_message_context_for_target()
                text = l10n.maybe_format_message(
                    _field(button_info, "text"),
                    message_context if isinstance(message_context, Mapping) else None
                )
                category_id = _field(category_info, "id") if category_info is not None else None
                callback_key = f"{category_id or INTERNAL_CATEGORY}_{func}"

                workspace.register_button_callback(callback_key, _field(button_info, "call"))
                return {
                    "info": button_info,
                    "xml": f'<button text="{xml_escape(text)}" callbackKey="{xml_escape(callback_key)}"></button>'
                }
            return original(button_info, category_info) if original is not None else None

    return installed
