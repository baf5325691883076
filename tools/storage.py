"""Storage status, replication and audit tools"""

import logging
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from managers.engine import ProvenanceEngine
from tools.identity import identity_from_args

logger = logging.getLogger("ProvenanceStore")


def register_storage_tools(mcp: FastMCP, engine: ProvenanceEngine):
    """Register storage tools with the MCP server"""

    @mcp.tool()
    def get_storage_info(display_name: str, user_id: str) -> dict:
        """Get storage configuration and status for a user.

        Call this first to verify where data lands and whether the shared
        mirror is reachable.

        Returns:
            Dict with:
            - folder_name: Sanitized per-user folder name
            - local_root: path, data_root, detection_method ("explicit" | "env" | "persistent_config" | "default")
            - shared_root: path, enabled, reachable, user_path, detection_method
            - sessions / inputs: Record counts
            - config_file: Path to the persistent config file
        """
        return engine.get_storage_info(identity_from_args(display_name, user_id))

    @mcp.tool()
    def set_shared_root(path: str, persist: bool = False) -> dict:
        """Point mirroring at a new shared root, or switch it off.

        Args:
            path: Directory for the shared mirror; "", "off", "none" or "disabled" disables mirroring
            persist: If True, remember the setting across restarts:
                - Windows: %APPDATA%/provenance-store/storage_config.json
                - Mac: ~/Library/Application Support/provenance-store/storage_config.json
                - Linux: ~/.config/provenance-store/storage_config.json
        """
        return engine.set_shared_root(path, persist=persist)

    @mcp.tool()
    def sync_user_data(display_name: str, user_id: str) -> dict:
        """Copy the user's whole private tree over the shared mirror.

        Returns:
            Dict with success, shared_path and file_count, or error
        """
        return engine.sync_user_data(identity_from_args(display_name, user_id))

    @mcp.tool()
    def log_event(
        display_name: str,
        user_id: str,
        type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """Append an audit event. type is one of "login", "action", "error"."""
        return engine.log_event(identity_from_args(display_name, user_id), type, message, context)

    @mcp.tool()
    def fetch_logs(display_name: str, user_id: str, limit: Optional[int] = None) -> dict:
        """Read audit events oldest first; limit keeps only the most recent ones."""
        return engine.fetch_logs(identity_from_args(display_name, user_id), limit)

    logger.info("Registered storage tools")
