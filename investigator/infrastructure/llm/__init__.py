from .anthropic_client import AnthropicCompletionClient

__all__ = ["AnthropicCompletionClient"]
