"""Artifact and input tools for the provenance store"""

import logging
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP, Image as FastMCPImage

from managers.engine import ProvenanceEngine
from tools.identity import identity_from_args

logger = logging.getLogger("ProvenanceStore")


def default_export_dir() -> Path:
    return Path.home() / "Downloads"


def register_artifact_tools(mcp: FastMCP, engine: ProvenanceEngine):
    """Register artifact tools with the MCP server"""

    @mcp.tool()
    def store_input(
        display_name: str,
        user_id: str,
        original_name: str,
        size_bytes: int,
        data: str,
    ) -> dict:
        """Store an uploaded source image, deduplicated by (original_name, size_bytes).

        Uploading the same name and size again returns the existing entry and
        writes nothing new.

        Args:
            original_name: Client-side filename, e.g. "cat.png"
            size_bytes: Client-reported byte size of the upload
            data: Base64 payload, optionally with a data:<mime>;base64, prefix

        Returns:
            Dict with success, id, filename (<base>_<uuid><ext>), hash, original_name, size_bytes
        """
        return engine.store_input(identity_from_args(display_name, user_id), original_name, size_bytes, data)

    @mcp.tool()
    def load_input(display_name: str, user_id: str, filename: str) -> dict:
        """Load a stored input as a data URI (data is None if missing)."""
        return engine.load_input(identity_from_args(display_name, user_id), filename)

    @mcp.tool()
    def list_inputs(display_name: str, user_id: str) -> dict:
        """List the user's input log entries."""
        return engine.list_inputs(identity_from_args(display_name, user_id))

    @mcp.tool()
    def save_artifact(display_name: str, user_id: str, folder: str, filename: str, data: str) -> dict:
        """Save a base64 payload as <folder>/<filename> in the user's root.

        Args:
            folder: One of outputs, inputs, controls, references, thumbnails
            filename: Single path component; an existing file is overwritten
            data: Base64 payload, optionally data-URI prefixed

        Returns:
            Dict with success and path, or error/error_code
            (INVALID_PATH, INVALID_PAYLOAD, ARTIFACT_IO)
        """
        return engine.save_artifact(identity_from_args(display_name, user_id), folder, filename, data)

    @mcp.tool()
    def save_artifact_from_url(display_name: str, user_id: str, folder: str, filename: str, url: str) -> dict:
        """Fetch an artifact from the generation service and store it."""
        return engine.save_artifact_from_url(identity_from_args(display_name, user_id), folder, filename, url)

    @mcp.tool()
    def load_artifact(display_name: str, user_id: str, folder: str, filename: str) -> dict:
        """Load an artifact as a data URI (data is None if missing)."""
        return engine.load_artifact(identity_from_args(display_name, user_id), folder, filename)

    @mcp.tool()
    def export_artifact(
        display_name: str,
        user_id: str,
        folder: str,
        filename: str,
        destination: Optional[str] = None,
    ) -> dict:
        """Copy an artifact out of the store.

        Args:
            destination: Target file or directory. Defaults to ~/Downloads.

        Returns:
            Dict with success and path, or error "File not found" (NOT_FOUND)
        """
        def choose(suggested_name: str):
            return Path(destination).expanduser() if destination else default_export_dir()

        return engine.export_artifact(identity_from_args(display_name, user_id), folder, filename, choose)

    @mcp.tool()
    def delete_artifact(display_name: str, user_id: str, folder: str, filename: str) -> dict:
        """Delete an artifact locally and from the shared mirror."""
        return engine.delete_artifact(identity_from_args(display_name, user_id), folder, filename)

    @mcp.tool()
    def preview_artifact(
        display_name: str,
        user_id: str,
        folder: str,
        filename: str,
        max_dim: Optional[int] = None,
        max_b64_chars: Optional[int] = None,
    ):
        """View a stored image inline in chat (WebP thumbnail preview).

        Args:
            max_dim: Maximum dimension in pixels (default: 512)
            max_b64_chars: Maximum base64 character count (default: 100000)

        Returns:
            Image content for inline display, or a dict explaining why it could not be inlined
        """
        result = engine.preview_artifact(
            identity_from_args(display_name, user_id),
            folder,
            filename,
            max_dim=max_dim or 512,
            max_b64_chars=max_b64_chars or 100_000,
        )
        if not result.get("success"):
            return result

        encoded = result.get("preview")
        if encoded is None:
            if "warning" in result:
                logger.warning(f"Refusing to inline {folder}/{filename}: {result['warning']}")
                return {"success": False, "error": result["warning"], "error_code": "PREVIEW_UNAVAILABLE"}
            return {"success": False, "error": "File not found", "error_code": "NOT_FOUND"}

        logger.info(
            f"preview_artifact success: {folder}/{filename} "
            f"preview_dims={encoded.size_px[0]}x{encoded.size_px[1]} b64_chars={encoded.b64_chars}"
        )
        return FastMCPImage(data=encoded.raw_bytes, format="webp")

    logger.info("Registered artifact tools")
