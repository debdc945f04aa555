"""Backend subsystem.

Provides:
- LLMProvider base class and stream types
- OllamaProvider implementation
- MockLLMProvider for testing
- LinkError classes for structured error handling
"""

from linkchat.llm.base import (
    ChatChunk,
    ChatOptions,
    LLMProvider,
    Message,
    MockLLMProvider,
    ModelInfo,
    # Error classes
    LinkError,
    ConnectionError,
    ModelError,
)
from linkchat.llm.ollama import OllamaProvider

__all__ = [
    # Core classes
    "ChatChunk",
    "ChatOptions",
    "LLMProvider",
    "Message",
    "ModelInfo",
    # Providers
    "OllamaProvider",
    "MockLLMProvider",
    # Errors
    "LinkError",
    "ConnectionError",
    "ModelError",
]
