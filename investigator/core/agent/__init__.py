"""Agent Module

Components:
- definitions: agent catalog (markdown + frontmatter) and model resolution
- tool_executor: routes model tool invocations to their providers
- runner: the tool-use loop driving one agent to completion
"""

from investigator.core.agent.definitions import (
    AgentCatalog,
    AgentDefinition,
    ModelRegistry,
    parse_agent_definition,
)
from investigator.core.agent.runner import AgentRunner
from investigator.core.agent.tool_executor import ToolUseExecutor, flatten_tool_content

__all__ = [
    "AgentCatalog",
    "AgentDefinition",
    "ModelRegistry",
    "parse_agent_definition",
    "AgentRunner",
    "ToolUseExecutor",
    "flatten_tool_content",
]
