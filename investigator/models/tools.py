"""Tool provider and model-protocol data models.

Covers the static tool provider configuration, the normalized results of
provider calls, and the content blocks exchanged with the completion service.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class Transport(str, Enum):
    """How a tool provider is reached."""

    NETWORK = "network"
    SUBPROCESS = "subprocess"


_TRANSPORT_ALIASES = {
    "network": Transport.NETWORK,
    "http": Transport.NETWORK,
    "subprocess": Transport.SUBPROCESS,
    "stdio": Transport.SUBPROCESS,
}


class ToolProviderConfig(BaseModel):
    """One configured tool provider, loaded at startup."""

    name: str
    transport: Transport = Transport.NETWORK
    url: Optional[str] = None
    command: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    auth: Optional[str] = Field(None, description="literal key | vault://<ref> | none")

    @field_validator("transport", mode="before")
    @classmethod
    def normalize_transport(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = value.strip().lower()
            if key not in _TRANSPORT_ALIASES:
                raise ValueError(f"unknown transport '{value}'")
            return _TRANSPORT_ALIASES[key]
        return value

    @model_validator(mode="after")
    def check_endpoint(self) -> "ToolProviderConfig":
        if self.transport == Transport.NETWORK and not self.url:
            raise ValueError(f"network provider '{self.name}' requires a url")
        if self.transport == Transport.SUBPROCESS and not self.command:
            raise ValueError(f"subprocess provider '{self.name}' requires a command")
        return self

    @property
    def endpoint(self) -> str:
        if self.transport == Transport.NETWORK:
            return self.url or ""
        return " ".join([self.command or "", *self.args]).strip()


class ToolInfo(BaseModel):
    """A tool as advertised by a provider and as sent to the model."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    def to_model_tool(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class ToolResultContent(BaseModel):
    """One structured content item returned by a provider."""

    type: str = "text"
    text: Optional[str] = None
    data: Optional[str] = None
    mime_type: Optional[str] = None
    uri: Optional[str] = None


class ToolCallResult(BaseModel):
    """Normalized result of a provider ``call_tool``."""

    content: List[ToolResultContent] = Field(default_factory=list)
    is_error: bool = False


class ProviderHealth(BaseModel):
    """Registry health snapshot for one provider."""

    name: str
    transport: Transport
    connected: bool
    circuit_state: str
    healthy: bool
    last_error: Optional[str] = None


# ---------------------------------------------------------------------------
# Completion protocol content blocks
# ---------------------------------------------------------------------------

class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A model-issued tool invocation."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """Result of one tool invocation, sent back to the model."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Union[TextBlock, ToolUseBlock]


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class CompletionResponse(BaseModel):
    """Response of one completion call: content blocks plus token usage."""

    content: List[ContentBlock] = Field(default_factory=list)
    stop_reason: Optional[str] = None
    usage: Usage = Field(default_factory=Usage)

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content if isinstance(block, TextBlock))
