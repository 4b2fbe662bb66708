"""Unit tests for streaming completion providers."""
import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import httpx
import pytest
from unittest.mock import AsyncMock, Mock, patch
from groq import APIError, AuthenticationError, RateLimitError

from models.conversation import ChatMessage, Role
from services.errors import StreamError, TransportError
from services.llm_client import (
    AnthropicCompletion,
    EventStreamDecoder,
    GoogleCompletion,
    GroqCompletion,
    MockCompletion,
    OpenAICompatibleCompletion,
)

MESSAGES = [
    ChatMessage(role=Role.SYSTEM, content="Only answer from context."),
    ChatMessage(role=Role.USER, content="How do I install?"),
]


def sse(*payloads):
    return "".join(f"data: {payload}\n\n" for payload in payloads).encode("utf-8")


def openai_delta(text):
    return json.dumps({"choices": [{"delta": {"content": text}}]})


async def collect(stream):
    return [fragment async for fragment in stream]


class TestEventStreamDecoder:
    """Test suite for EventStreamDecoder."""

    def test_events_split_across_feeds(self):
        decoder = EventStreamDecoder()

        assert decoder.feed("data: {\"a\"") == []
        assert decoder.feed(": 1}\n") == []
        assert decoder.feed("\ndata: [DONE]\n\n") == ['{"a": 1}', "[DONE]"]

    def test_ignores_non_data_lines(self):
        decoder = EventStreamDecoder()

        assert decoder.feed(": keep-alive\n\nevent: ping\nid: 3\n\n") == []

    def test_multiline_data_and_crlf(self):
        decoder = EventStreamDecoder()

        assert decoder.feed("data: one\r\ndata: two\r\n\r\n") == ["one\ntwo"]

    def test_flush_returns_unterminated_event(self):
        decoder = EventStreamDecoder()
        decoder.feed("data: tail")

        assert decoder.flush() == ["tail"]
        assert decoder.flush() == []


class TestOpenAICompatibleCompletion:
    """Test suite for the OpenAI streaming protocol."""

    @pytest.mark.asyncio
    async def test_streams_deltas_until_done(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["Authorization"]
            body = sse(
                json.dumps({"choices": [{"delta": {"role": "assistant"}}]}),
                openai_delta("Run "),
                openai_delta("npm install."),
                "[DONE]",
                openai_delta("ignored"),
            )
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        provider = OpenAICompatibleCompletion("sk-test", transport=httpx.MockTransport(handler))

        fragments = await collect(provider.generate_chat_completion(MESSAGES))

        assert fragments == ["Run ", "npm install."]
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["stream"] is True
        assert seen["body"]["model"] == "gpt-4o-mini"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "Only answer from context."}

    @pytest.mark.asyncio
    async def test_stream_without_done_ends_normally(self):
        handler = lambda request: httpx.Response(200, content=sse(openai_delta("partial")))
        provider = OpenAICompatibleCompletion("sk", transport=httpx.MockTransport(handler))

        assert await collect(provider.generate_chat_completion(MESSAGES)) == ["partial"]

    @pytest.mark.asyncio
    async def test_auth_error_before_stream(self):
        handler = lambda request: httpx.Response(401, json={"error": {"message": "bad key"}})
        provider = OpenAICompatibleCompletion("bad", transport=httpx.MockTransport(handler))

        with pytest.raises(TransportError) as exc_info:
            await collect(provider.generate_chat_completion(MESSAGES))

        assert exc_info.value.error.code == "AUTHENTICATION_ERROR"

    @pytest.mark.asyncio
    async def test_rate_limit_before_stream(self):
        handler = lambda request: httpx.Response(429)
        provider = OpenAICompatibleCompletion("sk", transport=httpx.MockTransport(handler))

        with pytest.raises(TransportError) as exc_info:
            await collect(provider.generate_chat_completion(MESSAGES))

        assert exc_info.value.error.code == "RATE_LIMIT_ERROR"

    @pytest.mark.asyncio
    async def test_connection_error_before_stream(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = OpenAICompatibleCompletion("sk", transport=httpx.MockTransport(handler))

        with pytest.raises(TransportError) as exc_info:
            await collect(provider.generate_chat_completion(MESSAGES))

        assert exc_info.value.error.code == "NETWORK_ERROR"

    @pytest.mark.asyncio
    async def test_malformed_event_is_stream_error_after_partial_content(self):
        handler = lambda request: httpx.Response(200, content=sse(openai_delta("kept"), "{not json"))
        provider = OpenAICompatibleCompletion("sk", transport=httpx.MockTransport(handler))

        fragments = []
        with pytest.raises(StreamError):
            async for fragment in provider.generate_chat_completion(MESSAGES):
                fragments.append(fragment)

        assert fragments == ["kept"]

    @pytest.mark.asyncio
    async def test_connection_drop_mid_stream(self):
        async def body():
            yield sse(openai_delta("first"))
            raise httpx.ReadError("connection reset")

        handler = lambda request: httpx.Response(200, content=body())
        provider = OpenAICompatibleCompletion("sk", transport=httpx.MockTransport(handler))

        fragments = []
        with pytest.raises(StreamError):
            async for fragment in provider.generate_chat_completion(MESSAGES):
                fragments.append(fragment)

        assert fragments == ["first"]

    @pytest.mark.asyncio
    async def test_early_close_stops_stream(self):
        async def body():
            for i in range(100):
                yield sse(openai_delta(str(i)))

        handler = lambda request: httpx.Response(200, content=body())
        provider = OpenAICompatibleCompletion("sk", transport=httpx.MockTransport(handler))

        stream = provider.generate_chat_completion(MESSAGES)
        first = await stream.__anext__()
        await stream.aclose()

        assert first == "0"
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_xai_base_url(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, content=sse("[DONE]"))

        provider = OpenAICompatibleCompletion(
            "xai-key", base_url="https://api.x.ai/v1", provider="xai", transport=httpx.MockTransport(handler)
        )
        await collect(provider.generate_chat_completion(MESSAGES))

        assert seen["url"] == "https://api.x.ai/v1/chat/completions"
        assert provider.model == "grok-2-latest"


class TestAnthropicCompletion:
    """Test suite for Anthropic streaming."""

    @pytest.mark.asyncio
    async def test_text_deltas_and_system_prompt(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["key"] = request.headers["x-api-key"]
            body = sse(
                json.dumps({"type": "message_start"}),
                json.dumps({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}}),
                json.dumps({"type": "ping"}),
                json.dumps({"type": "content_block_delta", "delta": {"type": "text_delta", "text": " there"}}),
                json.dumps({"type": "message_stop"}),
            )
            return httpx.Response(200, content=body)

        provider = AnthropicCompletion("ak", transport=httpx.MockTransport(handler))

        assert await collect(provider.generate_chat_completion(MESSAGES)) == ["Hi", " there"]
        assert seen["key"] == "ak"
        assert seen["body"]["system"] == "Only answer from context."
        assert seen["body"]["messages"] == [{"role": "user", "content": "How do I install?"}]

    @pytest.mark.asyncio
    async def test_error_event(self):
        handler = lambda request: httpx.Response(
            200, content=sse(json.dumps({"type": "error", "error": {"message": "overloaded"}}))
        )
        provider = AnthropicCompletion("ak", transport=httpx.MockTransport(handler))

        with pytest.raises(StreamError, match="overloaded"):
            await collect(provider.generate_chat_completion(MESSAGES))


class TestGoogleCompletion:
    """Test suite for Gemini streaming."""

    @pytest.mark.asyncio
    async def test_candidate_parts(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            event = {"candidates": [{"content": {"parts": [{"text": "Gemini says hi"}]}}]}
            return httpx.Response(200, content=sse(json.dumps(event)))

        provider = GoogleCompletion("gk", transport=httpx.MockTransport(handler))

        assert await collect(provider.generate_chat_completion(MESSAGES)) == ["Gemini says hi"]
        assert "streamGenerateContent" in seen["url"]
        assert seen["body"]["systemInstruction"] == {"parts": [{"text": "Only answer from context."}]}
        assert seen["body"]["contents"][0]["role"] == "user"


class FakeGroqStream:
    """Async iterable standing in for the groq SDK's AsyncStream."""

    def __init__(self, contents, error=None):
        self.contents = contents
        self.error = error
        self.close = AsyncMock()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for content in self.contents:
            yield Mock(choices=[Mock(delta=Mock(content=content))])
        if self.error is not None:
            raise self.error


class TestGroqCompletion:
    """Test suite for the groq SDK provider."""

    @pytest.fixture
    def provider(self):
        with patch('services.llm_client.AsyncGroq'):
            yield GroqCompletion(api_key="gsk-test")

    @pytest.mark.asyncio
    async def test_streams_content(self, provider):
        stream = FakeGroqStream(["Hello", None, " world"])
        provider.client.chat.completions.create = AsyncMock(return_value=stream)

        assert await collect(provider.generate_chat_completion(MESSAGES)) == ["Hello", " world"]
        stream.close.assert_awaited_once()
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["model"] == "llama-3.1-8b-instant"

    @pytest.mark.asyncio
    async def test_authentication_error(self, provider):
        provider.client.chat.completions.create = AsyncMock(side_effect=AuthenticationError(
            message="Invalid API key",
            response=Mock(status_code=401),
            body=None
        ))

        with pytest.raises(TransportError) as exc_info:
            await collect(provider.generate_chat_completion(MESSAGES))

        assert exc_info.value.error.code == "AUTHENTICATION_ERROR"

    @pytest.mark.asyncio
    async def test_rate_limit_error(self, provider):
        provider.client.chat.completions.create = AsyncMock(side_effect=RateLimitError(
            message="Rate limit exceeded",
            response=Mock(status_code=429),
            body=None
        ))

        with pytest.raises(TransportError) as exc_info:
            await collect(provider.generate_chat_completion(MESSAGES))

        assert exc_info.value.error.code == "RATE_LIMIT_ERROR"

    @pytest.mark.asyncio
    async def test_mid_stream_error(self, provider):
        stream = FakeGroqStream(["partial"], error=APIError(message="gone", request=Mock(), body=None))
        provider.client.chat.completions.create = AsyncMock(return_value=stream)

        fragments = []
        with pytest.raises(StreamError):
            async for fragment in provider.generate_chat_completion(MESSAGES):
                fragments.append(fragment)

        assert fragments == ["partial"]
        stream.close.assert_awaited_once()


class TestMockCompletion:
    """Test suite for the mock completion provider."""

    @pytest.mark.asyncio
    async def test_echoes_last_user_message(self):
        provider = MockCompletion(delay=0)
        messages = MESSAGES + [
            ChatMessage(role=Role.ASSISTANT, content="Earlier answer"),
            ChatMessage(role=Role.USER, content="What is topK?"),
        ]

        fragments = await collect(provider.generate_chat_completion(messages))

        text = "".join(fragments)
        assert text.startswith("[Development Mode Response]")
        assert 'I received your question: "What is topK?"' in text
        assert all(len(fragment) == 1 for fragment in fragments)
        assert text == provider.build_response(messages)

    @pytest.mark.asyncio
    async def test_early_termination(self):
        stream = MockCompletion(delay=0).generate_chat_completion(MESSAGES)

        first = await stream.__anext__()
        await stream.aclose()

        assert first == "["
