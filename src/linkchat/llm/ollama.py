"""Ollama backend.

Chat goes through Ollama's OpenAI-compatible API (``{endpoint}/v1``) with
the openai client; model management uses the native ``/api`` endpoints,
which report size and digest, over httpx.
"""

import logging
from typing import Iterator, Optional

import httpx
import openai

from linkchat.llm.base import (
    ChatChunk, ChatOptions, ConnectionError, LinkError, LLMProvider,
    Message, ModelError, ModelInfo,
)


logger = logging.getLogger(__name__)

PROVIDER = "Ollama"


def _parse_openai_error(e: Exception, model: str = "") -> LinkError:
    """Convert openai exceptions to structured LinkError."""
    if isinstance(e, openai.NotFoundError):
        return ModelError(PROVIDER, model)

    if isinstance(e, openai.APIConnectionError):
        return ConnectionError(PROVIDER, str(e))

    if isinstance(e, openai.APIStatusError):
        return LinkError(f"Server returned {e.status_code}: {e.message}", PROVIDER)

    return LinkError(str(e), PROVIDER)


class OllamaProvider(LLMProvider):
    """Streaming chat and model management against one Ollama server."""

    name = PROVIDER

    def __init__(
        self,
        endpoint: str = "http://localhost:11434",
        model: str = "gpt-oss:20b",
        timeout: float = 30,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        debug: bool = False,
    ):
        """Initialize the provider.

        Args:
            endpoint: Server root, e.g. http://localhost:11434 (no /v1).
            model: Model name as Ollama knows it.
            timeout: Seconds to wait for the server.
            temperature: Default sampling temperature.
            max_tokens: Default response length limit.
            debug: Print request payloads.
        """
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.debug = debug
        self._client = None
        self._http = None

    @classmethod
    def from_config(cls, config) -> "OllamaProvider":
        return cls(
            endpoint=config.ollama.endpoint,
            model=config.ollama.model,
            timeout=config.ollama.timeout,
            temperature=config.ollama.temperature,
            max_tokens=config.ollama.max_tokens,
            debug=config.debug,
        )

    @property
    def client(self) -> openai.OpenAI:
        """Lazy-load the OpenAI client pointed at the server's /v1 API."""
        if self._client is None:
            self._client = openai.OpenAI(
                api_key="ollama",  # required by the client, ignored by the server
                base_url=f"{self.endpoint}/v1",
                timeout=self.timeout,
            )
        return self._client

    @property
    def http(self) -> httpx.Client:
        """Lazy-load the httpx client for the native API."""
        if self._http is None:
            self._http = httpx.Client(base_url=self.endpoint, timeout=self.timeout)
        return self._http

    def close(self) -> None:
        if self._http is not None:
            self._http.close()
            self._http = None
        if self._client is not None:
            self._client.close()
            self._client = None

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    def chat(self, messages: list[Message], options: Optional[ChatOptions] = None) -> Iterator[ChatChunk]:
        """Stream a reply; raises ConnectionError/ModelError/LinkError on failure."""
        options = options or ChatOptions()

        payload = []
        if options.system_prompt:
            payload.append({"role": "system", "content": options.system_prompt})
        for msg in messages:
            if msg.role == "system":
                continue
            payload.append({"role": msg.role, "content": msg.content})

        kwargs = {
            "model": self.model,
            "messages": payload,
            "stream": True,
        }
        temperature = options.temperature if options.temperature is not None else self.temperature
        if temperature is not None:
            kwargs["temperature"] = temperature
        max_tokens = options.max_tokens or self.max_tokens
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        self._log_debug("REQUEST", {k: v for k, v in kwargs.items() if k != "messages"} | {
            "messages": len(payload),
        })

        try:
            stream = self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            raise _parse_openai_error(e, self.model) from e

        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta
                if delta is not None and delta.content:
                    yield ChatChunk(role=delta.role or "assistant", content=delta.content)
                if choice.finish_reason:
                    self._log_debug("FINISH", {"reason": choice.finish_reason})
                    break
        except openai.OpenAIError as e:
            raise _parse_openai_error(e, self.model) from e
        except httpx.HTTPError as e:
            raise ConnectionError(PROVIDER, f"stream interrupted: {e}") from e
        finally:
            stream.close()

        yield ChatChunk(done=True)

    # -------------------------------------------------------------------------
    # Native API
    # -------------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            model = (kwargs.get("json") or {}).get("model")
            if e.response.status_code == 404 and model:
                raise ModelError(PROVIDER, model) from e
            raise LinkError(
                f"{method} {path} returned {e.response.status_code}: {e.response.text.strip()}",
                PROVIDER,
            ) from e
        except httpx.HTTPError as e:
            raise ConnectionError(PROVIDER, f"{self.endpoint}: {e}") from e

        self._log_debug(f"{method} {path}", response.status_code)
        return response

    def list_models(self) -> list[ModelInfo]:
        """Models installed on the server (GET /api/tags)."""
        data = self._request("GET", "/api/tags").json()
        return [
            ModelInfo(
                name=m.get("name", ""),
                size=m.get("size", 0),
                modified=m.get("modified_at", ""),
                digest=m.get("digest", ""),
            )
            for m in data.get("models", [])
        ]

    def connect(self) -> bool:
        """Check whether the server answers."""
        try:
            self._request("GET", "/api/tags")
        except LinkError as e:
            logger.warning("Ollama not reachable at %s: %s", self.endpoint, e.message)
            return False
        return True

    def pull_model(self, name: str) -> str:
        """Download a model; blocks until the server finishes."""
        logger.info("Pulling model %s", name)
        data = self._request(
            "POST", "/api/pull",
            json={"model": name, "name": name, "stream": False},
            timeout=None,
        ).json()
        return data.get("status", "success")

    def delete_model(self, name: str) -> None:
        """Remove a model from the server."""
        logger.info("Deleting model %s", name)
        self._request("DELETE", "/api/delete", json={"model": name, "name": name})
