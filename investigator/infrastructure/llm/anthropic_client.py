"""
Anthropic completion client.

Implements ICompletionClient against the Anthropic messages API over aiohttp:
system prompt, tool catalog and running message history in; text and
tool_use content blocks plus token usage out.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from investigator.config.settings import LLMSettings
from investigator.exceptions import ModelCallFailed
from investigator.models.interfaces import ICompletionClient
from investigator.models.tools import CompletionResponse, TextBlock, ToolUseBlock, Usage

logger = logging.getLogger(__name__)


class AnthropicCompletionClient(ICompletionClient):
    """Messages API client with a lazily created shared HTTP session"""

    def __init__(self, settings: LLMSettings, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self._session = session
        self._owns_session = session is None

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def is_available(self) -> bool:
        return bool(self.settings.anthropic_api_key and self.settings.anthropic_base_url)

    def _headers(self) -> Dict[str, str]:
        api_key = self.settings.anthropic_api_key.get_secret_value() if self.settings.anthropic_api_key else ""
        return {
            "x-api-key": api_key,
            "anthropic-version": self.settings.anthropic_version,
            "content-type": "application/json",
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout)
            )
            self._owns_session = True
        return self._session

    async def create_message(
        self,
        model: str,
        system_prompt: str,
        tools: List[Dict[str, Any]],
        messages: List[Dict[str, Any]],
        max_tokens: int,
    ) -> CompletionResponse:
        payload: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": messages,
        }
        if tools:
            payload["tools"] = tools

        start = time.monotonic()
        try:
            async with self._get_session().post(
                f"{self.settings.anthropic_base_url.rstrip('/')}/messages",
                headers=self._headers(),
                json=payload,
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ModelCallFailed(
                        f"Anthropic API error {response.status}: {error_text[:500]}",
                        details={"status": response.status, "model": model},
                    )
                data = await response.json()
        except ModelCallFailed:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ModelCallFailed(
                f"Anthropic API request failed: {e or type(e).__name__}",
                details={"model": model},
            ) from e

        completion = self.parse_response(data)
        logger.debug(
            f"Anthropic completion model={model} in={completion.usage.input_tokens} "
            f"out={completion.usage.output_tokens} took={time.monotonic() - start:.2f}s"
        )
        return completion

    @staticmethod
    def parse_response(data: Dict[str, Any]) -> CompletionResponse:
        """Convert a messages API response body into a CompletionResponse.

        Block types other than text and tool_use (e.g. thinking) are dropped.
        """
        blocks = []
        try:
            for block in data.get("content") or []:
                block_type = block.get("type")
                if block_type == "text":
                    blocks.append(TextBlock(text=block.get("text", "")))
                elif block_type == "tool_use":
                    blocks.append(ToolUseBlock(
                        id=block["id"],
                        name=block["name"],
                        input=block.get("input") or {},
                    ))
            usage = data.get("usage") or {}
            return CompletionResponse(
                content=blocks,
                stop_reason=data.get("stop_reason"),
                usage=Usage(
                    input_tokens=usage.get("input_tokens", 0),
                    output_tokens=usage.get("output_tokens", 0),
                ),
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise ModelCallFailed(f"Malformed Anthropic API response: {e}") from e

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
