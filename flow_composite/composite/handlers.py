"""Composite handlers for branch, merge, loop and error-handler constructs.

Each handler receives the builder so it can recurse through
``builder.build_from`` with the shared :class:`BuildContext`.
"""

import logging
from typing import TYPE_CHECKING

from .context import BuildContext
from .naming import extract_slot_index
from .semantic import (
    ERROR_SLOT,
    FALLBACK_SLOT,
    LOOP_BODY_SLOT,
    LOOP_DONE_SLOT,
    Connection,
    IncomingEdge,
    SemanticGraph,
    SemanticNode,
    switch_rule_count,
)
from .tree import Branch, CompositeNode, FanOut, Loop, Merge

if TYPE_CHECKING:
    from .builder import CompositeBuilder


logger = logging.getLogger(__name__)


def build_targets(
    builder: "CompositeBuilder",
    node: SemanticNode,
    slot: str,
    connections: list[Connection],
    ctx: BuildContext,
) -> CompositeNode | None:
    """Build every target of one output slot.

    A single target becomes the subtree itself; several targets are an
    implicit fan-out and become siblings of a ``FanOut``.
    """
    built = []
    for conn in connections:
        incoming = IncomingEdge(node.name, slot, conn.target_input_index)
        subtree = builder.build_from(conn.target, ctx, incoming)
        if subtree is not None:
            built.append(subtree)

    if not built:
        return None
    if len(built) == 1:
        return built[0]
    return FanOut(branches=built)


# ===== ERROR HANDLER =====

def build_error_handler(
    builder: "CompositeBuilder",
    node: SemanticNode,
    ctx: BuildContext,
) -> CompositeNode | None:
    """Subtree hanging off the error output, or None when it is not wired."""
    connections = node.outputs.get(ERROR_SLOT, [])
    if not connections:
        return None
    logger.debug("Attaching error handler to %s", node.name)
    return build_targets(builder, node, ERROR_SLOT, connections, ctx)


# ===== BRANCHES =====

def build_if_else(
    builder: "CompositeBuilder",
    node: SemanticNode,
    ctx: BuildContext,
    incoming: IncomingEdge | None = None,
) -> CompositeNode:
    condition = builder.declare_leaf(node, ctx)

    branches = []
    with ctx.branch():
        for slot in ("output0", "output1"):
            branches.append(build_targets(builder, node, slot, node.outputs.get(slot, []), ctx))

    return Branch(
        construct_kind="if_else",
        condition=condition,
        labels=["true", "false"],
        branches=branches,
    )


def switch_case_slots(node: SemanticNode) -> list[tuple[str, str]]:
    """(label, slot) pairs for every case of a switch node, fallback last.

    The case count is the larger of the configured rule count and the
    highest wired case index, so unwired trailing cases still show up.
    """
    wired = [
        extract_slot_index(slot)
        for slot in node.outputs
        if slot.startswith("case") or slot.startswith("output")
    ]
    case_count = max([switch_rule_count(node.data)] + [index + 1 for index in wired])

    slots = []
    for index in range(case_count):
        slot = f"case{index}"
        if slot not in node.outputs and f"output{index}" in node.outputs:
            slot = f"output{index}"
        slots.append((f"case{index}", slot))
    if FALLBACK_SLOT in node.outputs:
        slots.append((FALLBACK_SLOT, FALLBACK_SLOT))
    return slots


def build_switch_case(
    builder: "CompositeBuilder",
    node: SemanticNode,
    ctx: BuildContext,
    incoming: IncomingEdge | None = None,
) -> CompositeNode:
    condition = builder.declare_leaf(node, ctx)

    labels = []
    branches = []
    with ctx.branch():
        for label, slot in switch_case_slots(node):
            labels.append(label)
            branches.append(build_targets(builder, node, slot, node.outputs.get(slot, []), ctx))

    return Branch(
        construct_kind="switch_case",
        condition=condition,
        labels=labels,
        branches=branches,
    )


# ===== MERGE =====

def merge_input_count(node: SemanticNode, graph: SemanticGraph) -> int:
    """Number of inputs of a merge node (at least two)."""
    configured = (node.data.get("parameters") or {}).get("numberInputs")
    wired = [edge.input_index + 1 for edge in graph.incoming(node.name)]
    return max([2, int(configured or 0)] + wired)


def build_merge(
    builder: "CompositeBuilder",
    node: SemanticNode,
    ctx: BuildContext,
    incoming: IncomingEdge | None = None,
) -> CompositeNode | None:
    """First arrival at a merge node.

    Outside a branch the producer inlines the merge and its downstream.
    Inside a branch the merge is declared at root level instead: its
    downstream is built once in root scope and the producer's edge is
    deferred like every later producer's.
    """
    input_count = merge_input_count(node, ctx.graph)

    if ctx.in_branch and incoming is not None:
        merge_leaf = builder.declare_leaf(node, ctx)
        with ctx.root_scope():
            downstream = builder.build_primary(node, ctx)
        ctx.defer_merge(merge_leaf, downstream)
        logger.debug("Deferred merge %s to root level", node.name)
        ctx.defer_connection(node.name, incoming.input_index, incoming.producer, incoming.output_slot)
        return None

    merge_leaf = builder.declare_leaf(node, ctx)
    inputs: list[CompositeNode | None] = [None] * input_count
    if incoming is not None:
        inputs[incoming.input_index] = ctx.reference(incoming.producer)

    return Merge(
        merge=merge_leaf,
        inputs=inputs,
        downstream=builder.build_primary(node, ctx),
    )


# ===== LOOP =====

def loop_slots(node: SemanticNode) -> tuple[str, str]:
    """(done slot, body slot) of a loop node."""
    done = LOOP_DONE_SLOT if LOOP_DONE_SLOT in node.outputs else "output0"
    body = LOOP_BODY_SLOT if LOOP_BODY_SLOT in node.outputs else "output1"
    return done, body


def build_loop(
    builder: "CompositeBuilder",
    node: SemanticNode,
    ctx: BuildContext,
    incoming: IncomingEdge | None = None,
) -> CompositeNode:
    loop_leaf = builder.declare_leaf(node, ctx)
    done_slot, body_slot = loop_slots(node)

    after = build_targets(builder, node, done_slot, node.outputs.get(done_slot, []), ctx)
    with ctx.loop_body(node.name):
        body = build_targets(builder, node, body_slot, node.outputs.get(body_slot, []), ctx)

    return Loop(loop=loop_leaf, body=body, after=after)
