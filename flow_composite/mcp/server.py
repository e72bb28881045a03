"""Flow Composite MCP Server

Provides tools for turning workflow graphs into composite trees.
Agents send n8n workflow JSON and get back the structured forest, an
outline of it, or a structural check report.
"""

import json
import logging
from pathlib import Path
from typing import Any

from fastmcp import FastMCP, Context
from fastmcp.exceptions import ToolError

# Import version for CLI
try:
    from flow_composite import __version__
except ImportError:
    __version__ = "unknown"

from ..composite import (
    BuildResult,
    CompositeBuildError,
    CompositeBuilder,
    WorkflowFormatError,
    check_structure,
    graph_from_workflow,
)
from ..config import get_build_config


logger = logging.getLogger(__name__)

# Create MCP server
mcp = FastMCP("Flow Composite Builder")

# Security: Define allowed base directory for file operations
WORKFLOWS_BASE = Path.cwd() / "workflows"


def validate_path(filepath: str, base: Path = WORKFLOWS_BASE) -> Path:
    """Validate file path is within allowed directory"""
    path = Path(filepath).resolve()
    try:
        path.relative_to(base.resolve())
        return path
    except ValueError:
        raise ToolError(f"Access denied: {filepath} is outside allowed directory")


def build_workflow(workflow: dict[str, Any]) -> BuildResult:
    """Load workflow JSON and build its composite forest."""
    config = get_build_config()
    graph = graph_from_workflow(workflow, config)
    return CompositeBuilder(config).build(graph)


def check_workflow(workflow: dict[str, Any]) -> dict[str, Any]:
    """Structural report for a workflow, without raising on defects."""
    config = get_build_config()
    try:
        graph = graph_from_workflow(workflow, config)
        warnings = check_structure(graph, config)
    except (WorkflowFormatError, CompositeBuildError) as e:
        return {
            "is_valid": False,
            "errors": [str(e)],
            "warnings": [],
        }

    return {
        "is_valid": True,
        "errors": [],
        "warnings": [warning.model_dump() for warning in warnings],
        "node_count": len(graph),
        "root_count": len(graph.roots()),
    }


# ===== BUILD TOOLS =====

@mcp.tool
def build_composite(workflow: dict) -> dict:
    """Build the composite tree forest for a workflow.

    Args:
        workflow: n8n workflow JSON with "nodes" and "connections"

    Returns:
        Forest with roots, variable_names and warnings

    Examples:
        build_composite({"nodes": [...], "connections": {...}})
    """
    try:
        result = build_workflow(workflow)
        return result.model_dump(mode="json", by_alias=True)
    except (WorkflowFormatError, CompositeBuildError) as e:
        raise ToolError(f"Failed to build composite tree: {e}")


@mcp.tool
def describe_composite(workflow: dict) -> str:
    """Return a readable outline of the composite tree forest.

    Args:
        workflow: n8n workflow JSON with "nodes" and "connections"

    Returns:
        Indented outline, one block per root tree
    """
    try:
        return str(build_workflow(workflow))
    except (WorkflowFormatError, CompositeBuildError) as e:
        raise ToolError(f"Failed to build composite tree: {e}")


@mcp.tool
def check_workflow_structure(workflow: dict) -> dict:
    """Check the graph properties the composite builder relies on.

    Reports unknown connection targets, cycles that do not pass through a
    loop node, and merge nodes with fewer than two inputs.

    Args:
        workflow: n8n workflow JSON with "nodes" and "connections"

    Returns:
        Validation result with is_valid, errors, and warnings
    """
    return check_workflow(workflow)


@mcp.tool
async def build_composite_from_file(ctx: Context, filepath: str) -> str:
    """Read a workflow JSON file and return its composite outline.

    Args:
        filepath: Path to a workflow .json file inside the workflows directory

    Returns:
        Indented outline of the composite tree forest
    """
    await ctx.info(f"Reading workflow from {filepath}")
    return await outline_from_file(ctx, filepath)


async def outline_from_file(ctx: Any, filepath: str, base: Path = WORKFLOWS_BASE) -> str:
    """Shared implementation of the file tool."""
    path = validate_path(filepath, base)
    if not path.exists():
        raise ToolError(f"File not found: {filepath}")
    if path.suffix != ".json":
        raise ToolError(f"Unsupported file format: {path.suffix}")

    try:
        workflow = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ToolError(f"Invalid JSON in {filepath}: {e}")

    try:
        result = build_workflow(workflow)
    except (WorkflowFormatError, CompositeBuildError) as e:
        raise ToolError(f"Failed to build composite tree: {e}")

    await ctx.info(f"✓ Built {len(result.roots)} root trees ({len(result.warnings)} warnings)")
    return str(result)


# ===== CLI SUPPORT =====

def main():
    """Main entry point for the CLI."""
    import argparse
    import sys

    parser = argparse.ArgumentParser(
        description="Flow Composite MCP Server - structured trees from workflow graphs"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"flow-composite {__version__}"
    )

    args = parser.parse_args()

    # Configure logging
    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(level=level)

    logger.info("Starting Flow Composite MCP Server (debug=%s)", args.debug)

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Flow Composite MCP Server stopped")
        sys.exit(0)


# ===== MAIN =====

if __name__ == "__main__":
    main()
