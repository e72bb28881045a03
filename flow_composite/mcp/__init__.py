"""MCP Server package for composite tree building.

This package provides a Model Context Protocol (MCP) server that exposes
the composite builder to AI agents.

Tools:
    - build_composite: Build the composite forest as JSON
    - describe_composite: Readable outline of the forest
    - check_workflow_structure: Structural report (errors and warnings)
    - build_composite_from_file: Outline of a workflow JSON file

Example:
    Start the MCP server:

    >>> from flow_composite.mcp.server import mcp
    >>> if __name__ == "__main__":
    ...     mcp.run()
"""

from .server import mcp

__all__ = [
    "mcp",
]
