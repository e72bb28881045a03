"""flow-composite - structured composite trees from workflow graphs.

This package turns a workflow's node/connection graph into a forest of
composite trees that mirror structured code (sequence, if/else,
switch/case, merge, batch loop, error handler), ready for a code
emission layer to render one declaration per node.

Example:
    Build a forest from n8n workflow JSON:

    >>> from flow_composite import build_composite, graph_from_workflow
    >>> result = build_composite(graph_from_workflow(workflow_json))
    >>> print(result)

    Or start the MCP server:

    $ python -m flow_composite.mcp.server

Modules:
    composite: Semantic graph model and composite tree builder
    config: Build configuration
    mcp: Model Context Protocol server exposing the builder
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .composite import (
    BuildResult,
    CompositeBuilder,
    SemanticGraph,
    build_composite,
    graph_from_workflow,
)
from .config import BuildConfig

__all__ = [
    "BuildConfig",
    "BuildResult",
    "CompositeBuilder",
    "SemanticGraph",
    "build_composite",
    "graph_from_workflow",
]
