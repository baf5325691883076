"""Session and generation tools for the provenance store"""

import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from managers.engine import ProvenanceEngine
from tools.identity import identity_from_args

logger = logging.getLogger("ProvenanceStore")


def register_session_tools(mcp: FastMCP, engine: ProvenanceEngine):
    """Register session tools with the MCP server"""

    @mcp.tool()
    def list_sessions(display_name: str, user_id: str) -> dict:
        """List the user's sessions, most recently updated first.

        Unreadable session documents are skipped rather than failing the listing.

        Args:
            display_name: Display name of the authenticated user
            user_id: Stable id of the authenticated user

        Returns:
            Dict with success and sessions (full session documents)
        """
        return engine.list_sessions(identity_from_args(display_name, user_id))

    @mcp.tool()
    def load_session(display_name: str, user_id: str, session_id: str) -> dict:
        """Load one session document.

        Returns:
            Dict with success and session (None if missing or unreadable)
        """
        return engine.load_session(identity_from_args(display_name, user_id), session_id)

    @mcp.tool()
    def save_session(display_name: str, user_id: str, session_id: str, session: Dict[str, Any]) -> dict:
        """Write a full session document (last writer wins).

        updated_at is advanced on every save and never moves backwards.
        Generations already completed or failed on disk cannot change status.

        Args:
            session_id: Id to save under; must equal session["session_id"]
            session: Complete session document

        Returns:
            Dict with success and the saved session, or error/error_code
            (INVALID_PATH, INVALID_TRANSITION, DOCUMENT_CORRUPT, ARTIFACT_IO)
        """
        return engine.save_session(identity_from_args(display_name, user_id), session_id, session)

    @mcp.tool()
    def delete_session(display_name: str, user_id: str, session_id: str) -> dict:
        """Delete a session document locally and from the shared mirror.

        Returns:
            Dict with success and deleted (False if it was already absent)
        """
        return engine.delete_session(identity_from_args(display_name, user_id), session_id)

    @mcp.tool()
    def create_session(display_name: str, user_id: str, title: str = "New Session") -> dict:
        """Create and persist an empty session."""
        return engine.create_session(identity_from_args(display_name, user_id), title)

    @mcp.tool()
    def rename_session(display_name: str, user_id: str, session_id: str, title: str) -> dict:
        """Change a session's title."""
        return engine.rename_session(identity_from_args(display_name, user_id), session_id, title)

    @mcp.tool()
    def update_session_graph(display_name: str, user_id: str, session_id: str, graph: Dict[str, Any]) -> dict:
        """Replace the session's UI graph state (stored as-is)."""
        return engine.update_session_graph(identity_from_args(display_name, user_id), session_id, graph)

    @mcp.tool()
    def create_generation(
        display_name: str,
        user_id: str,
        session_id: str,
        prompt: str,
        parameters: Optional[Dict[str, Any]] = None,
        control_images: Optional[List[Any]] = None,
        reference_images: Optional[List[Any]] = None,
    ) -> dict:
        """Record a new pending generation in a session.

        Control and reference uploads are stored through the deduplicated
        input store first; the generation keeps references to them.

        Args:
            prompt: Prompt text sent to the generation service
            parameters: Free-form generation parameters
            control_images: Base64 payloads, or dicts with data, original_name and size_bytes
            reference_images: Same shape as control_images

        Returns:
            Dict with success and generation (status "pending")
        """
        return engine.create_generation(
            identity_from_args(display_name, user_id),
            session_id,
            prompt,
            parameters,
            control_images or [],
            reference_images or [],
        )

    @mcp.tool()
    def complete_generation(
        display_name: str,
        user_id: str,
        session_id: str,
        generation_id: str,
        output_images: Optional[List[str]] = None,
        generation_time_ms: Optional[int] = None,
        output_texts: Optional[List[str]] = None,
    ) -> dict:
        """Save output images and mark a pending generation completed.

        Each output is written to outputs/ as output_<epoch-ms>_<uuid>.png with
        a JPEG thumbnail alongside.

        Returns:
            Dict with success and generation, or error_code INVALID_TRANSITION
            if the generation is no longer pending
        """
        return engine.complete_generation(
            identity_from_args(display_name, user_id),
            session_id,
            generation_id,
            output_images or [],
            generation_time_ms,
            output_texts,
        )

    @mcp.tool()
    def fail_generation(display_name: str, user_id: str, session_id: str, generation_id: str, error: str) -> dict:
        """Mark a pending generation failed with an error message."""
        return engine.fail_generation(identity_from_args(display_name, user_id), session_id, generation_id, error)

    @mcp.tool()
    def get_generation(display_name: str, user_id: str, session_id: str, generation_id: str) -> dict:
        """Fetch one generation record (None if the session or record is missing)."""
        return engine.get_generation(identity_from_args(display_name, user_id), session_id, generation_id)

    @mcp.tool()
    def export_sessions(display_name: str, user_id: str) -> dict:
        """Export every readable session as a single bundle: {"sessions": [...]}"""
        return engine.export_sessions(identity_from_args(display_name, user_id))

    @mcp.tool()
    def import_sessions(display_name: str, user_id: str, bundle: Dict[str, Any]) -> dict:
        """Import a bundle produced by export_sessions.

        Returns:
            Dict with success, imported (session ids) and failed ({session_id, error})
        """
        return engine.import_sessions(identity_from_args(display_name, user_id), bundle)

    logger.info("Registered session tools")
