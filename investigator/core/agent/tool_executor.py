"""Tool-Use Executor

Routes model-issued tool invocations to their owning provider and turns the
outcome, success or failure, into a tool-result block for the model. Never
raises for a failed tool: provider errors become error-flagged results so one
bad tool cannot abort the agent.
"""

import asyncio
import json
import logging
import time
from typing import List

from investigator.infrastructure.observability import metrics
from investigator.infrastructure.observability.tracing import record_span_error, start_tool_call_span
from investigator.models.interfaces import IToolRegistry
from investigator.models.tools import ToolCallResult, ToolResultBlock, ToolUseBlock

logger = logging.getLogger(__name__)

EMPTY_RESULT = "(empty result)"


def flatten_tool_content(result: ToolCallResult) -> str:
    """Join a provider's structured content into one text blob."""
    parts = []
    for item in result.content:
        if item.type == "text" and item.text:
            parts.append(item.text)
        elif item.type == "image" and item.data:
            parts.append(f"[image: {item.mime_type or 'unknown'}]")
        elif item.type == "resource" and item.text:
            parts.append(item.text)
        elif item.type in ("resource", "resource_link") and item.uri:
            parts.append(f"[resource: {item.uri}]")
    return "\n".join(parts)


def _error_content(message: str) -> str:
    return json.dumps({"error": message})


class ToolUseExecutor:
    """Executes tool invocations against an IToolRegistry."""

    def __init__(self, registry: IToolRegistry):
        self.registry = registry

    async def execute(self, tool_use: ToolUseBlock) -> ToolResultBlock:
        provider = self.registry.resolve_provider(tool_use.name)
        if provider is None:
            metrics.record_tool_call("unknown", tool_use.name, "unresolved")
            logger.warning(f"No provider registered for tool {tool_use.name}")
            return ToolResultBlock(
                tool_use_id=tool_use.id,
                content=_error_content(f'No provider registered for tool "{tool_use.name}"'),
                is_error=True,
            )

        start = time.monotonic()
        with start_tool_call_span(provider.name, tool_use.name) as span:
            try:
                result = await provider.call_tool(tool_use.name, tool_use.input)
            except Exception as e:
                record_span_error(span, e)
                logger.warning(
                    f"Tool {tool_use.name} on {provider.name} failed after "
                    f"{time.monotonic() - start:.2f}s: {e}"
                )
                return ToolResultBlock(
                    tool_use_id=tool_use.id,
                    content=_error_content(f"Tool execution failed: {e}"),
                    is_error=True,
                )

            text = flatten_tool_content(result)
            span.set_attribute("tool.result_length", len(text))
            span.set_attribute("tool.is_error", result.is_error)

        return ToolResultBlock(
            tool_use_id=tool_use.id,
            content=text or EMPTY_RESULT,
            is_error=result.is_error,
        )

    async def execute_batch(self, tool_uses: List[ToolUseBlock]) -> List[ToolResultBlock]:
        """Run every invocation concurrently; results keep the input order."""
        results = await asyncio.gather(
            *(self.execute(tool_use) for tool_use in tool_uses),
            return_exceptions=True,
        )
        blocks: List[ToolResultBlock] = []
        for tool_use, result in zip(tool_uses, results):
            if isinstance(result, BaseException):
                # execute() converts provider errors itself; this covers anything else
                blocks.append(ToolResultBlock(
                    tool_use_id=tool_use.id,
                    content=_error_content(f"Tool execution failed: {result}"),
                    is_error=True,
                ))
            else:
                blocks.append(result)
        return blocks
