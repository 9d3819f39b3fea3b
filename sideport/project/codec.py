"""Project codec - keeps sideloaded blocks alive across save and load.

The host cannot read blocks of extensions it never loaded, so on save every
sideloaded block is disguised as a procedure call carrying its real opcode
and mutation, and the id -> URL table travels along with the project. On
load the disguise is removed before the host deserializes anything, and
the ids are declared so the patched extension loader sideloads them.

Wire format::

    {
      "targets": [{"blocks": {"b1": {
          "opcode": "procedures_call",
          "mutation": {"tagName": "mutation", "children": [],
                       "proccode": "[📎 Sideload] myExt_go",
                       "mutation": "{...original mutation json...}"}}}}],
      "monitors": [...],
      "sideloadMonitors": [...],
      "sideloadExtensionURLs": {"myExt": "https://..."}
    }
"""

import copy
import json
import re
from collections.abc import Mapping
from typing import Any, Callable, Optional

from sideport.core.errors import MutationParseError
from sideport.core.logging import get_logger
from sideport.models.context import BridgeContext

logger = get_logger(__name__)

SIDELOAD_MARKER = "[📎 Sideload] "
PROCEDURE_CALL = "procedures_call"
URLS_FIELD = "sideloadExtensionURLs"
HOST_URLS_FIELD = "extensionURLs"
MONITORS_FIELD = "sideloadMonitors"
ENVS_FIELD = "sideloadExtensionEnvs"
LEGACY_ENVS_FIELD = "extensionEnvs"
EXTENSIONS_FIELD = "extensions"
LOAD_ORDER_VERSION = "0.0.0"

_FORBIDDEN_ID_CHARS = re.compile(r"[^\w-]", re.ASCII)


def extension_id_for_opcode(opcode: Any) -> Optional[str]:
    """Extension id of an opcode: its prefix before the first ``_``.

    Characters outside ``[A-Za-z0-9_-]`` become ``-``. Returns ``None`` for
    non-strings, opcodes without ``_`` and empty prefixes.
    """
    if not isinstance(opcode, str):
        return None
    index = opcode.find("_")
    if index == -1:
        return None
    prefix = _FORBIDDEN_ID_CHARS.sub("-", opcode[:index])
    return prefix or None


def _as_dict(value: Any) -> dict:
    return dict(value) if isinstance(value, Mapping) else {}


class ProjectCodec:
    """Encodes and decodes sideloaded blocks in project documents."""

    def __init__(self, ctx: BridgeContext, sideload_urls: Callable[[], dict[str, str]]):
        self._ctx = ctx
        self._sideload_urls = sideload_urls

    # Encode

    def encode(self, project: dict) -> dict:
        """Return a copy of ``project`` ready to be saved.

        Handles full projects (``targets``) and single sprites (``blocks``).
        """
        project = copy.deepcopy(project)
        table = dict(self._sideload_urls())
        ids = set(table)

        if "targets" in project:
            for target in project.get("targets") or []:
                self._encode_blocks(target.get("blocks"), ids)
            self._split_monitors(project, ids)
        else:
            self._encode_blocks(project.get("blocks"), ids)

        project[URLS_FIELD] = table
        return project

    def encode_json(self, text: str) -> str:
        return json.dumps(self.encode(json.loads(text)), ensure_ascii=False, separators=(",", ":"))

    @staticmethod
    def _encode_blocks(blocks: Any, ids: set[str]) -> None:
        if not isinstance(blocks, Mapping):
            return
        for block in blocks.values():
            if not isinstance(block, dict) or not block.get("opcode"):
                continue
            opcode = block["opcode"]
            if extension_id_for_opcode(opcode) not in ids:
                continue

            original = block.get("mutation")
            mutation = {
                "tagName": "mutation",
                "children": [],
                "proccode": f"{SIDELOAD_MARKER}{opcode}",
            }
            if original is not None:
                mutation["mutation"] = json.dumps(original, ensure_ascii=False, separators=(",", ":"))
            block["mutation"] = mutation
            block["opcode"] = PROCEDURE_CALL

    @staticmethod
    def _split_monitors(project: dict, ids: set[str]) -> None:
        monitors = project.get("monitors")
        if not isinstance(monitors, list):
            return
        kept, moved = [], []
        for monitor in monitors:
            opcode = monitor.get("opcode") if isinstance(monitor, Mapping) else None
            if opcode and extension_id_for_opcode(opcode) in ids:
                moved.append(monitor)
            else:
                kept.append(monitor)
        if moved:
            project["monitors"] = kept
            project.setdefault(MONITORS_FIELD, []).extend(moved)

    # Decode

    def decode(self, project: dict) -> dict:
        """Restore sideloaded blocks in place and declare their extensions.

        Must run before the host deserializes ``project``.
        """
        if LEGACY_ENVS_FIELD in project:
            logger.info("Legacy sideload project detected, migrating", component="codec")
            project[ENVS_FIELD] = project.pop(LEGACY_ENVS_FIELD)

        table = _as_dict(project.get(URLS_FIELD))
        host_urls = _as_dict(project.get(HOST_URLS_FIELD))
        envs = _as_dict(project.get(ENVS_FIELD))
        declared: set[str] = set()

        targets = project.get("targets")
        if isinstance(targets, list):
            for target in targets:
                try:
                    self._decode_blocks(target.get("blocks"), table, host_urls, envs, declared)
                except (AttributeError, KeyError, TypeError) as e:
                    logger.error(
                        f"Could not decode target {target.get('name') if isinstance(target, Mapping) else target!r}: {e}",
                        component="codec"
                    )

        extensions = project.get(EXTENSIONS_FIELD)
        if isinstance(extensions, dict):
            for extension_id in sorted(declared):
                extensions[extension_id] = LOAD_ORDER_VERSION

        if isinstance(project.get(URLS_FIELD), Mapping):
            del project[URLS_FIELD]
        if isinstance(project.get(MONITORS_FIELD), list) and isinstance(project.get("monitors"), list):
            project["monitors"].extend(project.pop(MONITORS_FIELD))
        if isinstance(project.get(ENVS_FIELD), Mapping):
            del project[ENVS_FIELD]
        return project

    def decode_json(self, text: str) -> str:
        return json.dumps(self.decode(json.loads(text)), ensure_ascii=False, separators=(",", ":"))

    def _declare(self, extension_id: str, url: str) -> None:
        self._ctx.declare(extension_id, url)
        self._ctx.map_url(extension_id, url)

    def _decode_blocks(self, blocks: Any, table: dict, host_urls: dict, envs: dict, declared: set[str]) -> None:
        if not isinstance(blocks, Mapping):
            return
        for block in blocks.values():
            if not isinstance(block, dict):
                continue
            opcode = block.get("opcode")
            mutation = block.get("mutation")

            if opcode == PROCEDURE_CALL and isinstance(mutation, Mapping):
                proccode = str(mutation.get("proccode", "")).strip()
                if not proccode.startswith(SIDELOAD_MARKER):
                    continue
                original_opcode = proccode[len(SIDELOAD_MARKER):]
                extension_id = extension_id_for_opcode(original_opcode)
                if not extension_id:
                    logger.warning(
                        f"Sideload block with an invalid id: {original_opcode}, ignored",
                        component="codec",
                        opcode=original_opcode
                    )
                    continue
                url = table.get(extension_id) or host_urls.get(extension_id)
                if not url:
                    logger.warning(
                        f"Sideload block with an invalid url: {extension_id}, ignored",
                        component="codec",
                        extension=extension_id
                    )
                    continue

                self._declare(extension_id, url)
                declared.add(extension_id)
                block["opcode"] = original_opcode
                self._restore_mutation(block, original_opcode)
                continue

            extension_id = extension_id_for_opcode(opcode)
            if extension_id and (extension_id in table or extension_id in envs):
                url = table.get(extension_id) or host_urls.get(extension_id)
                if not url:
                    logger.warning(
                        f"Sideload block with an invalid url: {extension_id}, ignored",
                        component="codec",
                        extension=extension_id
                    )
                    continue
                self._declare(extension_id, url)
                declared.add(extension_id)

    @staticmethod
    def _restore_mutation(block: dict, opcode: str) -> None:
        payload = block["mutation"].get("mutation")
        try:
            mutation = _parse_mutation(payload, opcode)
        except MutationParseError as e:
            logger.error(
                f"Could not parse the mutation of a sideload block, dropped: {e.message}",
                component="codec",
                opcode=opcode
            )
            mutation = None

        if mutation is not None:
            block["mutation"] = mutation
        else:
            del block["mutation"]


def _parse_mutation(payload: Any, opcode: str) -> Any:
    if not isinstance(payload, str):
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise MutationParseError(f"Invalid mutation JSON: {e.msg}", opcode=opcode, cause=e) from e
