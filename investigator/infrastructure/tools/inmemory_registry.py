"""
In-memory tool registry

Local implementation of IToolRegistry for tests and single-process runs
where tools are plain async callables instead of remote providers.
"""

import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from investigator.models.interfaces import IToolProvider, IToolRegistry
from investigator.models.tools import ToolCallResult, ToolInfo, ToolResultContent

ToolHandler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class InMemoryToolProvider(IToolProvider):
    """Provider whose tools are local callables.

    A handler may return a ``ToolCallResult``, a string (one text item) or
    any other value (stringified). Exceptions propagate to the caller.
    """

    def __init__(self, name: str):
        self._name = name
        self._tools: Dict[str, ToolInfo] = {}
        self._handlers: Dict[str, ToolHandler] = {}
        self.calls: List[Dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    def add_tool(self, name: str, handler: ToolHandler, description: str = "",
                 input_schema: Optional[Dict[str, Any]] = None) -> "InMemoryToolProvider":
        info = ToolInfo(name=name, description=description)
        if input_schema is not None:
            info = ToolInfo(name=name, description=description, input_schema=input_schema)
        self._tools[name] = info
        self._handlers[name] = handler
        return self

    async def list_tools(self) -> List[ToolInfo]:
        return list(self._tools.values())

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> ToolCallResult:
        self.calls.append({"tool": name, "arguments": arguments})
        handler = self._handlers.get(name)
        if handler is None:
            raise KeyError(f'Tool "{name}" not found on provider "{self._name}"')

        result = handler(arguments)
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, ToolCallResult):
            return result
        return ToolCallResult(content=[ToolResultContent(type="text", text=str(result))])


class InMemoryToolRegistry(IToolRegistry):
    """Registry over InMemoryToolProvider instances, indexed by tool name."""

    def __init__(self, providers: Optional[List[IToolProvider]] = None):
        self._providers: Dict[str, IToolProvider] = {}
        self._tool_index: Dict[str, str] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: IToolProvider) -> None:
        self._providers[provider.name] = provider
        if isinstance(provider, InMemoryToolProvider):
            for tool_name in provider._tools:
                self._tool_index.setdefault(tool_name, provider.name)

    def resolve_provider(self, tool_name: str) -> Optional[IToolProvider]:
        provider_name = self._tool_index.get(tool_name)
        return self._providers.get(provider_name) if provider_name else None

    def list_providers(self) -> List[str]:
        return list(self._providers)

    async def list_all_tools(self) -> List[ToolInfo]:
        catalog: List[ToolInfo] = []
        for name, provider in self._providers.items():
            for tool in await provider.list_tools():
                self._tool_index.setdefault(tool.name, name)
                if self._tool_index[tool.name] == name:
                    catalog.append(tool)
        return catalog
