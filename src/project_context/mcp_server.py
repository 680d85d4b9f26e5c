# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""MCP Server Protocol Layer for the project context cache.

This module implements the MCP protocol layer with ZERO business logic.
All business logic is delegated to ProjectContextService.
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from project_context.config import Config
from project_context.log_config import (
    ensure_data_directories,
    get_default_data_root,
    get_logs_dir,
)
from project_context.logging_setup import setup_logging
from project_context.service import ProjectContextService

logger = logging.getLogger(__name__)


class ProjectContextMCPServer:
    """MCP Protocol Layer for the project context cache.

    Responsibilities:
    - Initialize MCP server and register tools
    - Translate MCP requests to service calls
    - Format service responses as MCP tool results
    - Handle MCP server lifecycle (startup, shutdown)

    Design Constraint: This layer contains ZERO business logic.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        service: Optional[ProjectContextService] = None,
        project_root: Optional[Path] = None,
        data_root: Optional[Path] = None,
    ):
        """Initialize MCP server.

        Args:
            config: Configuration object. If None, loads from the project root.
            service: Service layer instance. If None, creates default service.
            project_root: Project to serve. If None, uses cwd.
            data_root: Root directory for cache and logs. If None, uses ~/.project_context/
        """
        self.project_root = Path(project_root).resolve() if project_root else Path.cwd()
        if config is None:
            config = Config.for_project(self.project_root)
        self.config = config

        self.data_root = data_root or get_default_data_root()
        ensure_data_directories(self.data_root)

        if service is None:
            service = ProjectContextService(
                config=config,
                project_root=self.project_root,
                data_root=self.data_root,
            )
        self.service = service

        self.mcp = FastMCP(name="project-context")

        self._register_tools()

        logger.info("ProjectContextMCPServer initialized")

    def _register_tools(self) -> None:
        """Register MCP tools with the server."""

        @self.mcp.tool()
        async def analyze_project(
            ctx: Context[ServerSession, None],
            force: bool = False,
        ) -> Dict[str, Any]:
            """Analyze the project structure.

            Detects frameworks (Hardhat, Foundry, Next.js, React, ...), classifies
            files into contracts, backend, frontend, tests, config and scripts,
            and tracks file dependencies. The analysis is cached for a few
            minutes to avoid repeated work.

            Args:
                force: Force a fresh analysis even if cached data exists.
                ctx: MCP context for logging

            Returns:
                Dictionary with:
                - data: The serialized analysis
                - message: Human-readable report
                - cached: Whether the cached analysis was used
            """
            await ctx.info(f"Analyzing project {self.project_root} (force={force})")
            try:
                result = self.service.analyze(force=force)
                return result.to_dict()
            except Exception as e:
                await ctx.error(f"Error analyzing project: {e}")
                return {"result": False, "message": f"Error analyzing project: {e}"}

        @self.mcp.tool()
        async def validate_relationships(
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Report relationships that are broken on disk.

            Returns:
                Dictionary with:
                - broken: List of {from, to, type, reason}
                - count: Number of broken relationships
            """
            broken = self.service.validate()
            await ctx.info(f"Found {len(broken)} broken relationships")
            return {"broken": [b.to_dict() for b in broken], "count": len(broken)}

        @self.mcp.tool()
        async def get_context_summary(max_length: Optional[int] = None) -> Dict[str, Any]:
            """Summarize the project stack, current focus and structure.

            Args:
                max_length: Maximum summary length in characters.
            """
            return {"summary": self.service.get_context_summary(max_length)}

        @self.mcp.tool()
        async def get_files_to_auto_load() -> Dict[str, Any]:
            """List the files worth loading as working context right now."""
            return {"files": self.service.get_files_to_auto_load()}

        @self.mcp.tool()
        async def set_focus(
            files: List[str],
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Set the files currently being worked on.

            Args:
                files: Absolute or project-relative file paths.
                ctx: MCP context for logging

            Returns:
                Dictionary with the new focus, active layer and related files.
            """
            try:
                context = self.service.set_focus(files)
            except ValueError as e:
                await ctx.error(f"Invalid focus: {e}")
                raise

            if context is None:
                state = self.service.get_context_state()
                return {
                    "focus": state.current_focus or [],
                    "active_layer": None,
                    "related_files": [],
                }
            return {
                "focus": context.state.current_focus or [],
                "active_layer": context.state.active_layer,
                "related_files": context.related_files,
            }

        @self.mcp.tool()
        async def find_dependents(
            file_path: str,
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Find every file that directly or transitively imports a file.

            Args:
                file_path: Absolute or project-relative file path.
                ctx: MCP context for logging
            """
            try:
                dependents = self.service.find_dependents(file_path)
            except ValueError as e:
                await ctx.error(f"Invalid path {file_path}: {e}")
                raise
            return {"file_path": file_path, "dependents": dependents}

        @self.mcp.tool()
        async def notify_file_changed(
            file_path: str,
            ctx: Context[ServerSession, None],
            deleted: bool = False,
        ) -> Dict[str, Any]:
            """Tell the server a file was written or deleted.

            Args:
                file_path: Absolute or project-relative file path.
                deleted: True if the file was removed.
                ctx: MCP context for logging
            """
            try:
                if deleted:
                    self.service.on_file_deleted(file_path)
                else:
                    self.service.on_file_written(file_path)
            except ValueError as e:
                await ctx.error(f"Invalid path {file_path}: {e}")
                raise
            return {"file_path": file_path, "deleted": deleted, "updated": True}

        logger.info(
            "MCP tools registered: analyze_project, validate_relationships, "
            "get_context_summary, get_files_to_auto_load, set_focus, find_dependents, "
            "notify_file_changed"
        )

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: Transport type to use. Options:
                - "stdio": Standard input/output (default)
                - "streamable-http": HTTP transport
                - "sse": Server-sent events transport
        """
        logger.info(f"Starting MCP server with {transport} transport")
        self.mcp.run(transport=transport)  # type: ignore[arg-type]

    def shutdown(self) -> None:
        """Shutdown the MCP server and cleanup resources."""
        logger.info("Shutting down MCP server")
        self.service.shutdown()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="Project Context MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=None,
        help="Project to analyze. Default: current directory",
    )
    parser.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help=f"Root directory for cached analyses and logs. Default: {get_default_data_root()}",
    )
    parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="Transport type for MCP server. Default: stdio",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Watch the project for file changes (also enabled by watch_files in config)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for MCP server.

    Initializes logging and starts the server with the chosen transport.
    """
    args = parse_args(argv)

    data_root = args.data_root or get_default_data_root()
    setup_logging(log_dir=get_logs_dir(data_root))

    server = ProjectContextMCPServer(project_root=args.project_root, data_root=data_root)
    if args.watch or server.config.watch_files:
        server.service.start_file_watcher()

    logger.info(
        f"Starting MCP server for {server.project_root} with data_root={server.data_root}"
    )
    try:
        server.run(transport=args.transport)
    finally:
        server.shutdown()


if __name__ == "__main__":
    main()
