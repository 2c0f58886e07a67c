"""
Host integration for the affection engine.

Not a host framework: this is the logic a host's event handlers and tool
registry call into. The host delivers inbound events as
{text?, sticker?, messageId?} and exposes STATUS_TOOL to the model.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from companion.affection.config import AffectionConfig, get_config, load_config_from_yaml
from companion.affection.core import TriggerResult
from companion.affection.manager import AffectionManager
from companion.affection.persistence import WorkspacePath

logger = logging.getLogger(__name__)

PLUGIN_NAME = "companion-affection"
PLUGIN_VERSION = "1.0.0"

STATUS_TOOL: Dict[str, Any] = {
    "name": "affection_status",
    "description": "Get current affection state and metrics",
    "schema": {
        "type": "object",
        "properties": {},
    },
}


@dataclass
class AffectionPluginConfig:
    """Host-supplied plugin settings."""
    enabled: bool = True
    workspace: Optional[str] = None      # falls back to the host workspace
    debug: bool = False                  # DEBUG logging for the affection package
    config_path: Optional[str] = None    # YAML tuning file

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "AffectionPluginConfig":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", True)),
            workspace=data.get("workspace"),
            debug=bool(data.get("debug", False)),
            config_path=data.get("configPath", data.get("config_path")),
        )


class AffectionPlugin:
    """
    Wires host events and the status tool to one AffectionManager.

    Args:
        settings: Plugin settings from the host
        host_workspace: Host workspace, used when settings.workspace is unset
    """

    def __init__(
        self,
        settings: Optional[AffectionPluginConfig] = None,
        host_workspace: Optional[WorkspacePath] = None,
    ):
        self.settings = settings or AffectionPluginConfig()
        workspace = self.settings.workspace or host_workspace or Path.cwd()

        if self.settings.debug:
            logging.getLogger("companion.affection").setLevel(logging.DEBUG)

        config: AffectionConfig = get_config()
        if self.settings.config_path:
            config = load_config_from_yaml(self.settings.config_path)

        self.manager = AffectionManager(workspace, config=config)
        logger.info(
            "%s %s ready (workspace=%s, enabled=%s)",
            PLUGIN_NAME, PLUGIN_VERSION, self.manager.workspace, self.settings.enabled,
        )

    async def on_inbound(self, event: Mapping[str, Any]) -> List[TriggerResult]:
        """Handler for the host's inbound-message event."""
        if not self.settings.enabled:
            return []
        return await self.manager.handle_event(event)

    async def call_status_tool(self, args: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Handler for the affection_status tool; takes no arguments."""
        return await self.manager.status()
