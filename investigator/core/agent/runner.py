"""Agent Runner

Drives one agent through the tool-use loop: system prompt and tool catalog
in, model call, concurrent execution of every requested tool, tool results
appended to the conversation, repeat until the model stops asking for tools
or the iteration cap is reached.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from investigator.core.agent.definitions import AgentCatalog, ModelRegistry
from investigator.core.agent.tool_executor import ToolUseExecutor
from investigator.exceptions import ModelCallFailed
from investigator.models.interfaces import ICompletionClient, IToolRegistry
from investigator.models.investigation import (
    AgentOutput,
    AgentRunRecord,
    StopReason,
    TokenUsage,
    utc_now,
)
from investigator.models.tools import CompletionResponse, TextBlock

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 50
DEFAULT_MAX_TOKENS = 16384

OutputCallback = Callable[[AgentOutput], Awaitable[None]]
RecordCallback = Callable[[AgentRunRecord], Awaitable[None]]


def kickoff_message(agent_name: str) -> Dict[str, Any]:
    """First user turn; the conversation cannot start empty."""
    return {
        "role": "user",
        "content": (
            f"Carry out your task as the {agent_name} agent using the investigation "
            "context in your instructions. Use the available tools as needed."
        ),
    }


def _assistant_message(response: CompletionResponse) -> Dict[str, Any]:
    content = [
        block.model_dump()
        for block in response.content
        if not (isinstance(block, TextBlock) and not block.text)
    ]
    return {"role": "assistant", "content": content}


class AgentRunner:
    """Runs agents against a completion client and a tool registry."""

    def __init__(
        self,
        completion_client: ICompletionClient,
        registry: IToolRegistry,
        catalog: AgentCatalog,
        model_registry: ModelRegistry,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self.completion_client = completion_client
        self.registry = registry
        self.catalog = catalog
        self.model_registry = model_registry
        self.executor = ToolUseExecutor(registry)
        self.max_iterations = max_iterations
        self.max_tokens = max_tokens

    def resolve_model(self, agent_name: str, model_override: Optional[str] = None) -> str:
        definition = self.catalog.get(agent_name)
        return self.model_registry.resolve(agent_name, model_override or definition.model)

    async def run(
        self,
        agent_name: str,
        investigation_context: str = "",
        model_override: Optional[str] = None,
        max_iterations: Optional[int] = None,
        max_tokens: Optional[int] = None,
        on_output: Optional[OutputCallback] = None,
        on_record: Optional[RecordCallback] = None,
    ) -> AgentOutput:
        """Run ``agent_name`` to completion.

        The stop reason reflects why the loop ended: ``end_turn`` when the
        model answered without requesting tools, ``max_iterations`` when the
        cap was hit while it still wanted tools. On the cap the content is the
        text of the last response.

        Raises:
            ModelCallFailed: The completion service failed
            ConfigurationException: The agent has no definition
        """
        started_at = utc_now()
        iteration_cap = max_iterations or self.max_iterations
        token_cap = max_tokens or self.max_tokens

        model = self.resolve_model(agent_name, model_override)
        system_prompt = self.catalog.build_system_prompt(agent_name, investigation_context)
        tools = [tool.to_model_tool() for tool in await self.registry.list_all_tools()]

        messages: List[Dict[str, Any]] = [kickoff_message(agent_name)]
        usage = TokenUsage()
        iterations = 0
        stop_reason = StopReason.MAX_ITERATIONS
        content = ""

        while iterations < iteration_cap:
            iterations += 1
            response = await self._complete(model, system_prompt, tools, messages, token_cap)
            usage.add(response.usage.input_tokens, response.usage.output_tokens)
            messages.append(_assistant_message(response))
            content = response.text

            tool_uses = response.tool_uses
            if not tool_uses or response.stop_reason == "end_turn":
                stop_reason = StopReason.END_TURN
                break

            logger.debug(f"Agent {agent_name} iteration {iterations}: executing {len(tool_uses)} tool call(s)")
            results = await self.executor.execute_batch(tool_uses)
            messages.append({"role": "user", "content": [result.model_dump() for result in results]})

        if stop_reason == StopReason.MAX_ITERATIONS:
            logger.warning(f"Agent {agent_name} hit the iteration cap of {iteration_cap}")

        completed_at = utc_now()
        output = AgentOutput(
            agent_name=agent_name,
            content=content,
            token_usage=usage,
            iterations=iterations,
            stop_reason=stop_reason,
        )
        record = AgentRunRecord(
            agent_name=agent_name,
            model=model,
            iterations=iterations,
            token_usage=usage,
            stop_reason=stop_reason,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=int((completed_at - started_at).total_seconds() * 1000),
        )

        if on_output is not None:
            await on_output(output)
        if on_record is not None:
            await on_record(record)

        return output

    async def _complete(self, model: str, system_prompt: str, tools: List[Dict[str, Any]],
                        messages: List[Dict[str, Any]], max_tokens: int) -> CompletionResponse:
        try:
            return await self.completion_client.create_message(
                model=model,
                system_prompt=system_prompt,
                tools=tools,
                messages=messages,
                max_tokens=max_tokens,
            )
        except ModelCallFailed:
            raise
        except Exception as e:
            raise ModelCallFailed(f"Completion call failed for model {model}: {e}") from e
