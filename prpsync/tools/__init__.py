"""Tool layer: parameter schemas, envelopes, registry and the orchestrator."""

from prpsync.tools.envelope import PUBLIC_MESSAGES
from prpsync.tools.handlers import PRPTools
from prpsync.tools.registry import TOOL_REGISTRY, ToolSpec

__all__ = ["PRPTools", "PUBLIC_MESSAGES", "TOOL_REGISTRY", "ToolSpec"]
