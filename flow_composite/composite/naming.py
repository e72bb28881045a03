"""Naming and classification utilities shared by the composite handlers."""

import keyword
import re
from enum import Enum

from ..config import BuildConfig
from .errors import NamingCollisionError
from .semantic import (
    ERROR_SLOT,
    FALLBACK_SLOT,
    LOOP_BODY_SLOT,
    LOOP_DONE_SLOT,
    Connection,
    SemanticNode,
    main_output_count,
    switch_rule_count,
)


class ConstructKind(str, Enum):
    """Structured construct a node is built into."""
    PLAIN = "plain"
    IF_ELSE = "if_else"
    SWITCH_CASE = "switch_case"
    MERGE = "merge"
    LOOP = "loop"


# Names that must never be emitted as variable identifiers
RESERVED_NAMES = frozenset(
    keyword.kwlist
    + keyword.softkwlist
    + [
        # Keywords of the JavaScript builder language
        "break", "case", "catch", "class", "const", "continue", "debugger",
        "default", "delete", "do", "else", "export", "extends", "finally",
        "for", "function", "if", "import", "in", "instanceof", "let", "new",
        "return", "static", "super", "switch", "this", "throw", "try",
        "typeof", "var", "void", "while", "with", "yield",
        # Builder functions
        "workflow", "trigger", "node", "merge", "expr", "sticky",
        "if_else", "ifElse", "switch_case", "switchCase",
        "split_in_batches", "splitInBatches", "language_model", "languageModel",
        "tool", "memory", "output_parser", "outputParser", "text_splitter",
        "textSplitter", "embeddings", "vector_store", "vectorStore",
        "retriever", "document",
        # Dangerous globals
        "eval", "exec", "compile", "open", "__import__", "globals", "locals",
        "vars", "getattr", "setattr", "delattr", "breakpoint", "input",
        "exit", "quit", "Function", "require", "process", "global",
        "globalThis", "window", "setTimeout", "setInterval", "setImmediate",
        "clearTimeout", "clearInterval", "clearImmediate", "module",
        "exports", "Buffer", "Reflect", "Proxy",
    ]
)


def to_variable_name(node_name: str, reserved_suffix: str = "_node") -> str:
    """Convert a node name into a safe identifier.

    >>> to_variable_name("HTTP Request")
    'hTTP_Request'
    >>> to_variable_name("1st step")
    '_1st_step'
    >>> to_variable_name("Merge")
    'merge_node'
    """
    var_name = re.sub(r"[^a-zA-Z0-9]", "_", node_name)
    var_name = re.sub(r"_+", "_", var_name)
    var_name = re.sub(r"_$", "", var_name)
    var_name = re.sub(r"^[A-Z]", lambda m: m.group(0).lower(), var_name)

    if re.match(r"^\d", var_name):
        var_name = "_" + var_name

    if re.match(r"^_[a-zA-Z]", var_name):
        var_name = var_name[1:]

    if not var_name or var_name == "_":
        return "unnamed" + reserved_suffix

    if var_name in RESERVED_NAMES:
        var_name = var_name + reserved_suffix

    return var_name


class VariableNamer:
    """Assigns collision-free identifiers to node names for one build."""

    def __init__(self, reserved_suffix: str = "_node"):
        self.reserved_suffix = reserved_suffix
        self._by_node: dict[str, str] = {}
        self._taken: set[str] = set()

    def assign(self, node_name: str) -> str:
        """Identifier for `node_name`, assigning a fresh one on first use."""
        if node_name in self._by_node:
            return self._by_node[node_name]

        base = to_variable_name(node_name, self.reserved_suffix)
        candidate = base
        counter = 2
        while candidate in self._taken:
            candidate = f"{base}_{counter}"
            counter += 1

        self._by_node[node_name] = candidate
        self._taken.add(candidate)
        return candidate

    def as_dict(self) -> dict[str, str]:
        return dict(self._by_node)

    def verify(self) -> None:
        """Raise if two nodes share an identifier."""
        seen: dict[str, str] = {}
        for node_name, var_name in self._by_node.items():
            if var_name in seen:
                raise NamingCollisionError(
                    f"'{node_name}' and '{seen[var_name]}' both map to '{var_name}'",
                    node_name,
                )
            seen[var_name] = node_name


def is_variable_candidate(node: SemanticNode, config: BuildConfig) -> bool:
    """Sticky notes carry no connections and are never declared as variables."""
    return node.type not in config.sticky_types


def construct_kind(node: SemanticNode, config: BuildConfig) -> ConstructKind:
    if node.type in config.if_types:
        return ConstructKind.IF_ELSE
    if node.type in config.switch_types:
        return ConstructKind.SWITCH_CASE
    if node.type in config.merge_types:
        return ConstructKind.MERGE
    if node.type in config.loop_types:
        return ConstructKind.LOOP
    return ConstructKind.PLAIN


def extract_slot_index(slot_name: str) -> int:
    """Trailing integer of a slot name ("case2" -> 2), 0 if absent."""
    match = re.search(r"(\d+)$", slot_name)
    return int(match.group(1)) if match else 0


def output_slot_name(output_index: int, is_switch: bool = False) -> str:
    return f"case{output_index}" if is_switch else f"output{output_index}"


def output_index(node: SemanticNode, slot: str, config: BuildConfig) -> int:
    """Numeric output index of a named slot on `node`."""
    if slot == ERROR_SLOT:
        return main_output_count(node.data | {"type": node.type}, config)
    if slot == LOOP_DONE_SLOT:
        return 0
    if slot == LOOP_BODY_SLOT:
        return 1
    if slot == FALLBACK_SLOT:
        return switch_rule_count(node.data)
    return extract_slot_index(slot)


def primary_output(node: SemanticNode) -> tuple[str, list[Connection]] | None:
    """First non-error output slot that has connections."""
    for slot, connections in node.outputs.items():
        if slot == ERROR_SLOT:
            continue
        if connections:
            return slot, connections
    return None


def primary_output_targets(node: SemanticNode) -> list[str]:
    primary = primary_output(node)
    if primary is None:
        return []
    return [conn.target for conn in primary[1]]


def error_output_targets(node: SemanticNode) -> list[str]:
    return [conn.target for conn in node.outputs.get(ERROR_SLOT, [])]


def has_error_output(node: SemanticNode) -> bool:
    """Node routes failures to its error output."""
    if node.outputs.get(ERROR_SLOT):
        return True
    return node.data.get("onError") == "continueErrorOutput"
