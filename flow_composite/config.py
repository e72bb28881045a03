"""Configuration for composite tree building."""

from dataclasses import dataclass, field
from typing import List
import os


def _split_env(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class BuildConfig:
    """Node type tables and limits used by the composite builder."""

    # Node types mapped to each construct kind
    if_types: List[str] = field(default_factory=lambda: ["n8n-nodes-base.if"])
    switch_types: List[str] = field(default_factory=lambda: ["n8n-nodes-base.switch"])
    merge_types: List[str] = field(default_factory=lambda: ["n8n-nodes-base.merge"])
    loop_types: List[str] = field(default_factory=lambda: ["n8n-nodes-base.splitInBatches"])

    # Presentation-only nodes, never declared as variables
    sticky_types: List[str] = field(default_factory=lambda: ["n8n-nodes-base.stickyNote"])

    # Construct nesting limit (plain chains and fan-outs do not count towards it)
    max_depth: int = 100

    # Appended to identifiers that clash with reserved names
    reserved_suffix: str = "_node"

    @classmethod
    def from_env(cls) -> "BuildConfig":
        """Create configuration from environment variables."""
        config = cls()
        for attr, env_name in (
            ("if_types", "FLOW_COMPOSITE_IF_TYPES"),
            ("switch_types", "FLOW_COMPOSITE_SWITCH_TYPES"),
            ("merge_types", "FLOW_COMPOSITE_MERGE_TYPES"),
            ("loop_types", "FLOW_COMPOSITE_LOOP_TYPES"),
            ("sticky_types", "FLOW_COMPOSITE_STICKY_TYPES"),
        ):
            value = os.getenv(env_name)
            if value:
                setattr(config, attr, _split_env(value))

        config.max_depth = int(os.getenv("FLOW_COMPOSITE_MAX_DEPTH", str(config.max_depth)))
        config.reserved_suffix = os.getenv("FLOW_COMPOSITE_RESERVED_SUFFIX", config.reserved_suffix)
        return config


# Default configuration instance
DEFAULT_BUILD_CONFIG = BuildConfig()


def get_build_config() -> BuildConfig:
    """Get the current build configuration."""
    if any(name.startswith("FLOW_COMPOSITE_") for name in os.environ):
        return BuildConfig.from_env()
    return DEFAULT_BUILD_CONFIG
