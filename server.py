import argparse
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP

from managers.engine import ProvenanceEngine
from managers.storage_config import StorageConfig
from tools.artifact import register_artifact_tools
from tools.session import register_session_tools
from tools.storage import register_storage_tools

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("MCP_Server")


class AppContext:
    def __init__(self, engine: ProvenanceEngine):
        self.engine = engine


def build_server(config: StorageConfig) -> FastMCP:
    """Create the MCP server with every storage tool registered against one engine."""
    engine = ProvenanceEngine(config)

    @asynccontextmanager
    async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
        """Manage application lifecycle"""
        logger.info("Starting MCP server lifecycle...")
        try:
            logger.info(f"Storage data root: {config.data_root} ({config.data_root_method})")
            if config.mirroring_enabled:
                logger.info(f"Shared mirror root: {config.shared_root} ({config.shared_root_method})")
            else:
                logger.info("Shared mirroring disabled")
            yield AppContext(engine=engine)
        finally:
            logger.info("Shutting down MCP server")

    mcp = FastMCP("Provenance_Store", lifespan=app_lifespan)
    register_session_tools(mcp, engine)
    register_artifact_tools(mcp, engine)
    register_storage_tools(mcp, engine)
    return mcp


def main():
    parser = argparse.ArgumentParser(description="Local-first provenance storage MCP server")
    parser.add_argument("--data-root", default=None, help="Private data root (overrides PROVENANCE_DATA_ROOT)")
    parser.add_argument(
        "--shared-root",
        default=None,
        help='Shared mirror root (overrides PROVENANCE_SHARED_ROOT); "off" disables mirroring',
    )
    args = parser.parse_args()

    mcp = build_server(StorageConfig(data_root=args.data_root, shared_root=args.shared_root))
    mcp.run(transport="streamable-http")


if __name__ == "__main__":
    main()
