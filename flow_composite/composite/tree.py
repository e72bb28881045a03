"""Composite tree node definitions.

A composite tree mirrors structured code: sequences, branches, merges,
loops and error handlers. Every semantic node is declared by exactly one
``Leaf``; anywhere else it appears as a ``VariableReference``.
"""

from typing import Annotated, Iterator, Literal, Union

from pydantic import BaseModel, Field

from .errors import BuildWarning
from .semantic import SemanticNode


def _indent(text: str, prefix: str = "  ") -> str:
    return "\n".join(prefix + line for line in text.splitlines())


def _labelled(label: str, child: "CompositeNode | None") -> str:
    if child is None:
        return f"{label}: (empty)"
    return f"{label}:\n{_indent(str(child))}"


class Leaf(BaseModel):
    """Single declaration point of a semantic node."""
    kind: Literal["leaf"] = "leaf"
    node: SemanticNode
    error_handler: "CompositeNode | None" = None
    subnodes: dict[str, list["CompositeNode"]] = Field(default_factory=dict)

    def __str__(self) -> str:
        lines = [str(self.node)]
        for connection_type, children in self.subnodes.items():
            for child in children:
                lines.append(_indent(_labelled(connection_type, child)))
        if self.error_handler is not None:
            lines.append(_indent(_labelled("on error", self.error_handler)))
        return "\n".join(lines)


class VariableReference(BaseModel):
    """Back-reference to a node declared elsewhere in the forest."""
    kind: Literal["varRef"] = "varRef"
    var_name: str
    node_name: str

    def __str__(self) -> str:
        return f"@{self.var_name}"


class Sequence(BaseModel):
    """``head`` followed by ``tail``."""
    kind: Literal["sequence"] = "sequence"
    head: "CompositeNode"
    tail: "CompositeNode | None" = None

    def __str__(self) -> str:
        if self.tail is None:
            return str(self.head)
        return f"{self.head}\n-> {str(self.tail).lstrip()}"


class FanOut(BaseModel):
    """Sibling paths leaving the same output slot."""
    kind: Literal["fanOut"] = "fanOut"
    branches: list["CompositeNode"] = Field(default_factory=list)

    def __str__(self) -> str:
        return "\n".join(
            _labelled(f"parallel {i}", branch) for i, branch in enumerate(self.branches)
        )


class Branch(BaseModel):
    """if/else or switch/case construct."""
    kind: Literal["branch"] = "branch"
    construct_kind: Literal["if_else", "switch_case"]
    condition: Leaf
    labels: list[str] = Field(default_factory=list)
    branches: list["CompositeNode | None"] = Field(default_factory=list)

    def __str__(self) -> str:
        header = f"{self.construct_kind} {self.condition}"
        parts = [_labelled(label, branch) for label, branch in zip(self.labels, self.branches)]
        return "\n".join([header] + [_indent(part) for part in parts])


class Merge(BaseModel):
    """Join point of several producers.

    ``inputs`` is indexed by merge input; only the producer that inlined
    the merge is filled in, the others arrive as root-level
    ``InputConnection`` entries.
    """
    kind: Literal["merge"] = "merge"
    merge: Leaf
    inputs: list["CompositeNode | None"] = Field(default_factory=list)
    downstream: "CompositeNode | None" = None

    def __str__(self) -> str:
        header = f"merge {self.merge}"
        parts = [_labelled(f"input {i}", item) for i, item in enumerate(self.inputs) if item is not None]
        parts.append(_labelled("then", self.downstream))
        return "\n".join([header] + [_indent(part) for part in parts])


class Loop(BaseModel):
    """Batch loop: ``body`` runs per batch, ``after`` once iteration is done."""
    kind: Literal["loop"] = "loop"
    loop: Leaf
    body: "CompositeNode | None" = None
    after: "CompositeNode | None" = None

    def __str__(self) -> str:
        parts = [_labelled("each batch", self.body), _labelled("done", self.after)]
        return "\n".join([f"loop {self.loop}"] + [_indent(part) for part in parts])


class InputConnection(BaseModel):
    """Root-level wiring of a producer output into a consumer input."""
    kind: Literal["connect"] = "connect"
    producer: VariableReference
    output_slot: str
    output_index: int = 0
    consumer: VariableReference
    input_index: int = 0

    def __str__(self) -> str:
        return f"{self.producer}.{self.output_slot} -> {self.consumer}.input({self.input_index})"


CompositeNode = Annotated[
    Union[Leaf, VariableReference, Sequence, FanOut, Branch, Merge, Loop, InputConnection],
    Field(discriminator="kind"),
]

for _model in (Leaf, Sequence, FanOut, Branch, Merge, Loop):
    _model.model_rebuild()


def iter_composite(node: "CompositeNode | None") -> Iterator[BaseModel]:
    """Yield every composite node of a tree, depth first."""
    if node is None:
        return
    stack: list[BaseModel] = [node]
    while stack:
        current = stack.pop()
        yield current
        children: list = []
        if isinstance(current, Leaf):
            for group in current.subnodes.values():
                children.extend(group)
            children.append(current.error_handler)
        elif isinstance(current, Sequence):
            children = [current.head, current.tail]
        elif isinstance(current, (FanOut, Branch)):
            if isinstance(current, Branch):
                children.append(current.condition)
            children.extend(current.branches)
        elif isinstance(current, Merge):
            children = [current.merge, *current.inputs, current.downstream]
        elif isinstance(current, Loop):
            children = [current.loop, current.body, current.after]
        elif isinstance(current, InputConnection):
            children = [current.producer, current.consumer]
        stack.extend(reversed([child for child in children if child is not None]))


class BuildResult(BaseModel):
    """Composite forest plus the names assigned while building it."""
    roots: list[CompositeNode] = Field(default_factory=list)
    variable_names: dict[str, str] = Field(default_factory=dict)
    warnings: list[BuildWarning] = Field(default_factory=list)

    def __str__(self) -> str:
        return "\n\n".join(str(root) for root in self.roots) + ("\n" if self.roots else "")

    def iter_nodes(self) -> Iterator[BaseModel]:
        for root in self.roots:
            yield from iter_composite(root)

    def leaves(self) -> list[Leaf]:
        return [item for item in self.iter_nodes() if isinstance(item, Leaf)]

    def references(self) -> list[VariableReference]:
        return [item for item in self.iter_nodes() if isinstance(item, VariableReference)]

    def find_leaf(self, node_name: str) -> Leaf | None:
        for leaf in self.leaves():
            if leaf.node.name == node_name:
                return leaf
        return None
