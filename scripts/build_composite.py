#!/usr/bin/env python3
"""Manual composite build tool for testing and debugging."""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Add the project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from flow_composite.composite import CompositeBuildError, WorkflowFormatError, graph_from_workflow
from flow_composite.composite.builder import CompositeBuilder
from flow_composite.config import get_build_config


def build(args) -> int:
    """Build and print the composite forest of one workflow file."""
    workflow = json.loads(Path(args.workflow).read_text())
    config = get_build_config()
    if args.max_depth:
        config = replace(config, max_depth=args.max_depth)

    try:
        graph = graph_from_workflow(workflow, config)
        result = CompositeBuilder(config).build(graph)
    except (WorkflowFormatError, CompositeBuildError) as e:
        print(f"❌ {e}")
        return 1

    if args.json:
        print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
    else:
        print(result)

    if args.show_names:
        print("\n📄 Variable names:")
        for node_name, var_name in result.variable_names.items():
            print(f"  {var_name} = {node_name}")

    for warning in result.warnings:
        print(f"⚠️  {warning}")

    print(f"\n✅ {len(graph)} nodes, {len(result.roots)} root trees")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Build a composite tree from a workflow file")
    parser.add_argument("workflow", help="Path to an n8n workflow JSON file")
    parser.add_argument("--json", action="store_true", help="Print the forest as JSON")
    parser.add_argument("--show-names", action="store_true", help="Print assigned variable names")
    parser.add_argument("--max-depth", type=int, help="Construct nesting limit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)
    sys.exit(build(args))


if __name__ == "__main__":
    main()
