"""Tests for LLM module."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from linkchat.config import Config
from linkchat.llm import (
    ChatChunk,
    ChatOptions,
    ConnectionError,
    LinkError,
    Message,
    MockLLMProvider,
    ModelError,
    ModelInfo,
    OllamaProvider,
)


ENDPOINT = "http://ollama.test:11434"


def make_chunk(content=None, finish_reason=None, role=None):
    delta = SimpleNamespace(content=content, role=role)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


class FakeStream:
    """Iterable stand-in for an openai stream."""

    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error
        self.closed = False

    def __iter__(self):
        yield from self.chunks
        if self.error is not None:
            raise self.error

    def close(self):
        self.closed = True


def provider_with_stream(stream, **kwargs):
    provider = OllamaProvider(endpoint=ENDPOINT, model="llama3", **kwargs)
    provider._client = MagicMock()
    provider._client.chat.completions.create.return_value = stream
    return provider


def provider_with_transport(handler):
    provider = OllamaProvider(endpoint=ENDPOINT, model="llama3")
    provider._http = httpx.Client(base_url=ENDPOINT, transport=httpx.MockTransport(handler))
    return provider


# ============================================================================
# Errors and data types
# ============================================================================

class TestErrors:
    """Tests for structured errors."""

    def test_connection_error_suggests_ollama_serve(self):
        """Test the connection suggestion."""
        error = ConnectionError("Ollama", "refused")
        assert "ollama serve" in error.suggestion
        assert str(error).startswith("[Ollama] Connection failed: refused")

    def test_model_error(self):
        """Test the missing-model suggestion."""
        error = ModelError("Ollama", "llama3")
        assert error.model == "llama3"
        assert "link models --pull llama3" in error.suggestion
        assert isinstance(error, LinkError)


class TestModelInfo:
    """Tests for ModelInfo.size_display."""

    @pytest.mark.parametrize("size,expected", [
        (512, "512 B"),
        (2048, "2.0 KB"),
        (5 * 1024 ** 2, "5.0 MB"),
        (int(4.7 * 1024 ** 3), "4.7 GB"),
    ])
    def test_size_display(self, size, expected):
        """Test human-readable sizes."""
        assert ModelInfo(name="m", size=size).size_display == expected


# ============================================================================
# Mock provider
# ============================================================================

class TestMockLLMProvider:
    """Tests for MockLLMProvider."""

    def test_streams_queued_response(self):
        """Test chunking and the final done marker."""
        provider = MockLLMProvider(chunk_size=3)
        provider.add_response("abcdefg")

        chunks = list(provider.chat([Message(role="user", content="hi")]))

        assert [c.content for c in chunks[:-1]] == ["abc", "def", "g"]
        assert chunks[-1].done is True

    def test_echoes_without_response(self):
        """Test the echo fallback."""
        provider = MockLLMProvider()
        assert provider.complete([Message(role="user", content="ping")]) == "[Mock] Received: ping"

    def test_fail_after(self):
        """Test a stream that breaks off."""
        provider = MockLLMProvider(chunk_size=1)
        provider.add_response("abcdef")
        provider.fail_after = 2

        received = []
        with pytest.raises(ConnectionError):
            for chunk in provider.chat([Message(role="user", content="x")]):
                received.append(chunk.content)
        assert received == ["a", "b"]

    def test_unsupported_model_management(self):
        """Test that the base class refuses pull and delete."""
        with pytest.raises(LinkError):
            MockLLMProvider().pull_model("x")


# ============================================================================
# Ollama provider
# ============================================================================

class TestOllamaChat:
    """Tests for OllamaProvider.chat with a faked openai client."""

    def test_streams_content(self):
        """Test that deltas are yielded in order and the stream is closed."""
        stream = FakeStream([
            make_chunk(role="assistant"),
            make_chunk("Hel"),
            make_chunk("lo"),
            make_chunk(finish_reason="stop"),
        ])
        provider = provider_with_stream(stream)

        chunks = list(provider.chat([Message(role="user", content="hi")]))

        assert [c.content for c in chunks] == ["Hel", "lo", ""]
        assert chunks[-1] == ChatChunk(done=True)
        assert stream.closed

    def test_request_payload(self):
        """Test system prompt placement and sampling options."""
        provider = provider_with_stream(FakeStream([]), temperature=0.7, max_tokens=100)

        list(provider.chat(
            [Message(role="system", content="ignored"), Message(role="user", content="hi")],
            ChatOptions(system_prompt="Be brief.", temperature=0.1),
        ))

        kwargs = provider._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama3"
        assert kwargs["stream"] is True
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 100
        assert kwargs["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "hi"},
        ]

    def test_connection_refused(self):
        """Test that an unreachable server is a ConnectionError."""
        provider = OllamaProvider(endpoint=ENDPOINT, model="llama3")
        provider._client = MagicMock()
        provider._client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=httpx.Request("POST", f"{ENDPOINT}/v1/chat/completions")
        )

        with pytest.raises(ConnectionError) as exc:
            list(provider.chat([Message(role="user", content="hi")]))
        assert "ollama serve" in exc.value.suggestion

    def test_missing_model(self):
        """Test that a 404 maps to ModelError."""
        request = httpx.Request("POST", f"{ENDPOINT}/v1/chat/completions")
        provider = OllamaProvider(endpoint=ENDPOINT, model="llama3")
        provider._client = MagicMock()
        provider._client.chat.completions.create.side_effect = openai.NotFoundError(
            "model not found", response=httpx.Response(404, request=request), body=None
        )

        with pytest.raises(ModelError):
            list(provider.chat([Message(role="user", content="hi")]))

    def test_stream_interrupted(self):
        """Test that a transport error mid-stream is a ConnectionError."""
        stream = FakeStream([make_chunk("partial")], error=httpx.ReadError("reset"))
        provider = provider_with_stream(stream)

        received = []
        with pytest.raises(ConnectionError):
            for chunk in provider.chat([Message(role="user", content="hi")]):
                received.append(chunk.content)

        assert received == ["partial"]
        assert stream.closed

    def test_from_config(self):
        """Test construction from settings."""
        config = Config()
        config.set("ollama.endpoint", ENDPOINT + "/", save=False)

        provider = OllamaProvider.from_config(config)

        assert provider.endpoint == ENDPOINT
        assert provider.model == config.ollama.model
        assert provider.timeout == config.ollama.timeout


class TestOllamaNativeApi:
    """Tests for model management over httpx."""

    def test_list_models(self):
        """Test parsing /api/tags."""

        def handler(request):
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [
                {"name": "llama3:latest", "size": 4_700_000_000, "modified_at": "2024-05-01", "digest": "abc"},
            ]})

        models = provider_with_transport(handler).list_models()

        assert [m.name for m in models] == ["llama3:latest"]
        assert models[0].digest == "abc"

    def test_connect(self):
        """Test reachability in both directions."""
        up = provider_with_transport(lambda request: httpx.Response(200, json={"models": []}))
        assert up.connect() is True

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        assert provider_with_transport(refuse).connect() is False

    def test_unreachable_list_raises(self):
        """Test that transport errors become ConnectionError."""

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ConnectionError):
            provider_with_transport(refuse).list_models()

    def test_pull(self):
        """Test the pull request body."""
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = request.read()
            return httpx.Response(200, json={"status": "success"})

        assert provider_with_transport(handler).pull_model("qwen2") == "success"
        assert seen["path"] == "/api/pull"
        assert b'"qwen2"' in seen["body"]

    def test_delete_missing_model(self):
        """Test that removing an unknown model is a ModelError."""
        handler = lambda request: httpx.Response(404, json={"error": "model not found"})

        with pytest.raises(ModelError):
            provider_with_transport(handler).delete_model("ghost")

    def test_server_error(self):
        """Test that other statuses are a LinkError."""
        handler = lambda request: httpx.Response(500, text="boom")

        with pytest.raises(LinkError) as exc:
            provider_with_transport(handler).list_models()
        assert "500" in exc.value.message
