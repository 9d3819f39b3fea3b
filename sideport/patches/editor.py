"""Editor patches - the sideport section of the block palette."""

import xml.etree.ElementTree as ET
from typing import Any, Optional

from sideport.core.l10n import format_message
from sideport.core.logging import get_logger
from sideport.core.settings import BridgeSettings
from sideport.models.context import BridgeContext
from .applicator import PatchApplicator, applicator as default_applicator
from .engine import DETECTION_FLAG

logger = get_logger(__name__)

TOOLBOX_LABEL = "💡 Sideport"
DASHBOARD_CALLBACK = "SIDEPORT_FRONTEND"
OPEN_DASHBOARD = {"id": "sideport.openDashboard", "default": "Open Dashboard"}


def inject_toolbox(xml_list: list, workspace: Any, ctx: BridgeContext) -> list:
    """Append the sideport section to a palette category's element list."""
    xml_list.append(ET.Element("sep", {"gap": "36"}))
    xml_list.append(ET.Element("label", {"text": TOOLBOX_LABEL}))

    if ctx.open_dashboard is not None:
        xml_list.append(ET.Element("button", {
            "text": format_message(OPEN_DASHBOARD),
            "callbackKey": DASHBOARD_CALLBACK,
        }))
        workspace.register_button_callback(DASHBOARD_CALLBACK, lambda *args: ctx.open_dashboard())

    # Drag this into a script to test for the bridge.
    block = ET.Element("block", {"type": "argument_reporter_boolean", "gap": "16"})
    field = ET.SubElement(block, "field", {"name": "VALUE"})
    field.text = DETECTION_FLAG
    ET.SubElement(block, "mutation", {"sideport": "installed"})
    xml_list.append(block)
    return xml_list


def refresh_toolbox(workspace: Any) -> bool:
    if workspace is None:
        logger.error(
            format_message({
                "id": "sideport.failedToRefreshToolbox",
                "default": "Failed to refresh toolbox: workspace is undefined"
            }),
            component="patches"
        )
        return False

    workspace.get_toolbox().refresh_selection()
    workspace.toolbox_refresh_enabled_ = True
    return True


def apply_patches_for_editor(
    editor: Any,
    ctx: BridgeContext,
    settings: BridgeSettings,
    applicator: Optional[PatchApplicator] = None
) -> list[str]:
    """Install the editor patches and refresh the palette.

    Returns:
        Names of the mixins that were installed.
    """
    applicator = applicator or default_applicator
    installed = []

    name = "editor.procedures.add_create_button_"
    if settings.mixin_enabled(name):
        @applicator.patch(editor.procedures)
        def add_create_button_(this, original, workspace, xml_list):
            if original is not None:
                original(workspace, xml_list)
            inject_toolbox(xml_list, workspace, ctx)

        installed.append(name)
        logger.patch_installed(name)

    refresh_toolbox(editor.get_main_workspace())
    return installed
