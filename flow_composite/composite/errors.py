"""Errors and warnings raised while building composite trees."""

from pydantic import BaseModel


class CompositeBuildError(Exception):
    """Base class for fatal composite build failures."""

    def __init__(self, reason: str, node_name: str | None = None):
        self.reason = reason
        self.node_name = node_name
        if node_name is not None:
            super().__init__(f"{reason} (node: '{node_name}')")
        else:
            super().__init__(reason)


class StructuralError(CompositeBuildError):
    """The graph (or the tree built from it) is structurally inconsistent."""


class CycleError(StructuralError):
    """A cycle that does not pass through a loop node."""


class NamingCollisionError(CompositeBuildError):
    """Two distinct nodes ended up with the same variable name."""


class WorkflowFormatError(Exception):
    """Workflow JSON could not be turned into a semantic graph."""


class BuildWarning(BaseModel):
    """Non-fatal diagnostic returned alongside a built forest."""
    code: str
    message: str
    node_name: str | None = None

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"
