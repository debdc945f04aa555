"""Abstract backend interface."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional


# =============================================================================
# Error Classes - Structured errors with a suggested fix
# =============================================================================

class LinkError(Exception):
    """Base exception for backend errors."""

    def __init__(self, message: str, provider: str = "", suggestion: str = ""):
        self.message = message
        self.provider = provider
        self.suggestion = suggestion
        super().__init__(self.format_message())

    def format_message(self) -> str:
        parts = [f"[{self.provider}] {self.message}" if self.provider else self.message]
        if self.suggestion:
            parts.append(f"\n  Suggestion: {self.suggestion}")
        return "".join(parts)


class ConnectionError(LinkError):
    """Backend unreachable, or the stream broke off."""

    def __init__(self, provider: str, details: str = ""):
        super().__init__(
            message=f"Connection failed: {details}" if details else "Connection failed",
            provider=provider,
            suggestion="Check that the server is running (`ollama serve`) and ollama.endpoint is correct",
        )


class ModelError(LinkError):
    """Model not present on the server."""

    def __init__(self, provider: str, model: str):
        super().__init__(
            message=f"Model '{model}' not available",
            provider=provider,
            suggestion=f"Pull it with `link models --pull {model}` or pick another with `link config --set ollama.model=NAME`",
        )
        self.model = model


# =============================================================================
# Data types
# =============================================================================

@dataclass
class Message:
    """A chat message as sent to the backend."""
    role: str  # "user", "assistant", "system"
    content: str


@dataclass
class ChatOptions:
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class ChatChunk:
    """One streamed fragment. The last chunk of every stream has done=True."""
    role: str = "assistant"
    content: str = ""
    done: bool = False


@dataclass
class ModelInfo:
    """A model installed on the server."""
    name: str
    size: int = 0
    modified: str = ""
    digest: str = ""

    @property
    def size_display(self) -> str:
        size = float(self.size)
        for unit in ("B", "KB", "MB", "GB"):
            if size < 1024 or unit == "GB":
                return f"{size:.1f} {unit}" if unit != "B" else f"{int(size)} B"
            size /= 1024
        return f"{size:.1f} GB"


class LLMProvider(ABC):
    """Abstract base class for chat backends.

    Attributes:
        debug: Print request/response payloads.
    """

    name: str = "base"
    debug: bool = False

    @abstractmethod
    def chat(self, messages: list[Message], options: Optional[ChatOptions] = None) -> Iterator[ChatChunk]:
        """Stream a reply to the conversation.

        Args:
            messages: Conversation so far, oldest first.
            options: System prompt and sampling overrides.

        Yields:
            ChatChunk fragments in order; the last one has ``done`` set.

        Raises:
            ConnectionError: If the backend cannot be reached or the stream fails.
        """

    @abstractmethod
    def list_models(self) -> list[ModelInfo]:
        """Models installed on the server."""

    @abstractmethod
    def connect(self) -> bool:
        """Check whether the server answers."""

    def pull_model(self, name: str) -> str:
        raise LinkError(f"Pulling models is not supported by {self.name}", self.name)

    def delete_model(self, name: str) -> None:
        raise LinkError(f"Removing models is not supported by {self.name}", self.name)

    def complete(self, messages: list[Message], options: Optional[ChatOptions] = None) -> str:
        """Consume a whole stream and return the text."""
        return "".join(chunk.content for chunk in self.chat(messages, options))

    def _log_debug(self, label: str, data: object) -> None:
        """Log debug information if debug mode is enabled."""
        if self.debug:
            try:
                formatted = json.dumps(data, indent=2, default=str, ensure_ascii=False)
            except (TypeError, ValueError):
                formatted = str(data)
            print(f"\033[90m[DEBUG {label}]\n{formatted}\033[0m")


class MockLLMProvider(LLMProvider):
    """Canned-response backend for tests.

    Each call to ``chat`` pops the next queued response (or echoes the last
    user message) and streams it in ``chunk_size`` pieces.
    """

    name = "Mock"

    def __init__(self, chunk_size: int = 8):
        self.responses: list[str] = []
        self.calls: list[tuple[list[Message], Optional[ChatOptions]]] = []
        self.models: list[ModelInfo] = [ModelInfo(name="mock-model", size=1024)]
        self.chunk_size = chunk_size
        self.available = True
        self.fail_after: Optional[int] = None

    def add_response(self, response: str) -> None:
        """Queue a canned response."""
        self.responses.append(response)

    def chat(self, messages: list[Message], options: Optional[ChatOptions] = None) -> Iterator[ChatChunk]:
        self.calls.append((list(messages), options))
        if self.responses:
            content = self.responses.pop(0)
        else:
            last_user = next((m.content for m in reversed(messages) if m.role == "user"), "No message")
            content = f"[Mock] Received: {last_user}"

        for index, start in enumerate(range(0, len(content), self.chunk_size)):
            if self.fail_after is not None and index >= self.fail_after:
                raise ConnectionError(self.name, "stream interrupted")
            yield ChatChunk(content=content[start:start + self.chunk_size])
        yield ChatChunk(done=True)

    def list_models(self) -> list[ModelInfo]:
        if not self.available:
            raise ConnectionError(self.name, "offline")
        return list(self.models)

    def connect(self) -> bool:
        return self.available
