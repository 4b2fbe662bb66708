"""Streaming chat-completion providers."""
import asyncio
import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx
from groq import AsyncGroq
from groq import APIError, APITimeoutError, AuthenticationError, RateLimitError

from config import DEFAULT_LLM_MODELS, DEFAULT_TEMPERATURE, MOCK_STREAM_DELAY, REQUEST_TIMEOUT
from models.conversation import ChatMessage, Role
from services.errors import StreamError, TransportError, transport_error_for_status

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class EventStreamDecoder:
    """
    Incremental decoder for `text/event-stream` bodies.

    Events are separated by a blank line. Only `data:` lines are kept (joined
    with newlines when an event has several); `event:`, `id:` and comment
    lines are dropped.
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, text: str) -> List[str]:
        """Add raw text and return the data payloads of every completed event."""
        self._buffer += text.replace("\r\n", "\n")
        payloads = []
        while "\n\n" in self._buffer:
            event, self._buffer = self._buffer.split("\n\n", 1)
            data = self._extract_data(event)
            if data is not None:
                payloads.append(data)
        return payloads

    def flush(self) -> List[str]:
        """Return the payload of a final event that was not blank-line terminated."""
        event, self._buffer = self._buffer, ""
        data = self._extract_data(event)
        return [data] if data is not None else []

    @staticmethod
    def _extract_data(event: str) -> Optional[str]:
        lines = [
            line[5:].lstrip(" ")
            for line in event.split("\n")
            if line.startswith("data:")
        ]
        if not lines:
            return None
        return "\n".join(lines)


async def stream_events(
    provider: str,
    url: str,
    headers: Dict[str, str],
    payload: Dict[str, Any],
    timeout: float = REQUEST_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> AsyncIterator[str]:
    """
    POST `payload` and yield the data payload of each server-sent event.

    Raises:
        TransportError: If the request fails before the stream starts
        StreamError: If the connection breaks while streaming
    """
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        try:
            async with client.stream("POST", url, headers=headers, json=payload) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    error = transport_error_for_status(provider, response.status_code, body)
                    logger.error(error.error.message)
                    raise error

                decoder = EventStreamDecoder()
                try:
                    async for text in response.aiter_text():
                        for data in decoder.feed(text):
                            yield data
                except (httpx.TimeoutException, httpx.TransportError) as e:
                    logger.error(f"{provider}: stream interrupted: {e}")
                    raise StreamError(
                        f"{provider}: connection lost while streaming",
                        details={"provider": provider, "original_error": str(e)},
                    ) from e

                for data in decoder.flush():
                    yield data
        except httpx.TimeoutException as e:
            raise TransportError(
                f"{provider}: request timeout after {timeout}s",
                code="TIMEOUT_ERROR",
                details={"provider": provider, "original_error": str(e)},
            ) from e
        except httpx.RequestError as e:
            raise TransportError(
                f"{provider}: network error: {e}",
                code="NETWORK_ERROR",
                details={"provider": provider, "original_error": str(e)},
            ) from e


def decode_event(provider: str, data: str) -> Dict[str, Any]:
    try:
        return json.loads(data)
    except json.JSONDecodeError as e:
        logger.error(f"{provider}: could not decode stream event: {data[:200]}")
        raise StreamError(
            f"{provider}: malformed stream event",
            details={"provider": provider, "event": data[:200]},
        ) from e


class OpenAICompatibleCompletion:
    """
    Chat completions over the OpenAI streaming protocol.

    Request `{model, messages, stream: true}`; each event carries
    `choices[0].delta.content` and the stream ends with `data: [DONE]`.
    Also used for xAI, which speaks the same protocol.
    """

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        provider: str = "openai",
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.provider = provider
        self.model = model or DEFAULT_LLM_MODELS[provider]
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout = timeout
        self.transport = transport
        logger.info(f"Initialized {provider} completion provider with model: {self.model}")

    async def generate_chat_completion(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        payload = {
            "model": self.model,
            "messages": [message.to_dict() for message in messages],
            "stream": True,
            "temperature": self.temperature,
        }
        events = stream_events(
            self.provider, f"{self.base_url}/chat/completions", headers, payload,
            timeout=self.timeout, transport=self.transport,
        )
        finished = False
        async with aclosing(events):
            async for data in events:
                if data == DONE_SENTINEL:
                    finished = True
                    break
                event = decode_event(self.provider, data)
                choices = event.get("choices") or [{}]
                content = (choices[0].get("delta") or {}).get("content")
                if content:
                    yield content

        if not finished:
            logger.warning(f"{self.provider}: stream closed without {DONE_SENTINEL}")


class AnthropicCompletion:
    """Anthropic Messages API streaming (`content_block_delta` events)."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: str = "https://api.anthropic.com/v1",
        max_tokens: int = 1024,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_LLM_MODELS["anthropic"]
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.transport = transport
        logger.info(f"Initialized anthropic completion provider with model: {self.model}")

    async def generate_chat_completion(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        system = "\n\n".join(m.content for m in messages if m.role == Role.SYSTEM)
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": True,
            "messages": [m.to_dict() for m in messages if m.role != Role.SYSTEM],
        }
        if system:
            payload["system"] = system
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }
        events = stream_events(
            "anthropic", f"{self.base_url}/messages", headers, payload,
            timeout=self.timeout, transport=self.transport,
        )
        async with aclosing(events):
            async for data in events:
                event = decode_event("anthropic", data)
                event_type = event.get("type")
                if event_type == "content_block_delta":
                    text = event.get("delta", {}).get("text")
                    if text:
                        yield text
                elif event_type == "message_stop":
                    break
                elif event_type == "error":
                    message = event.get("error", {}).get("message", "unknown error")
                    raise StreamError(f"anthropic: {message}", details={"provider": "anthropic", "event": event})


class GoogleCompletion:
    """Gemini `streamGenerateContent` with server-sent events."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_LLM_MODELS["google-genai"]
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout = timeout
        self.transport = transport
        logger.info(f"Initialized google-genai completion provider with model: {self.model}")

    async def generate_chat_completion(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        system = "\n\n".join(m.content for m in messages if m.role == Role.SYSTEM)
        payload: Dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if m.role == Role.ASSISTANT else "user",
                    "parts": [{"text": m.content}],
                }
                for m in messages if m.role != Role.SYSTEM
            ],
            "generationConfig": {"temperature": self.temperature},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        url = f"{self.base_url}/models/{self.model}:streamGenerateContent?alt=sse"

        events = stream_events(
            "google-genai", url, headers, payload,
            timeout=self.timeout, transport=self.transport,
        )
        async with aclosing(events):
            async for data in events:
                event = decode_event("google-genai", data)
                for candidate in event.get("candidates", [])[:1]:
                    for part in candidate.get("content", {}).get("parts", []):
                        if part.get("text"):
                            yield part["text"]


class GroqCompletion:
    """Groq chat completions through the groq SDK's async stream."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = REQUEST_TIMEOUT
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_LLM_MODELS["groq"]
        self.temperature = temperature
        self.client = AsyncGroq(api_key=api_key, timeout=timeout)
        logger.info(f"Initialized groq completion provider with model: {self.model}")

    async def generate_chat_completion(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=[message.to_dict() for message in messages],
                temperature=self.temperature,
                stream=True,
            )
        except AuthenticationError as e:
            raise TransportError(
                "groq: authentication failed. Please check your API key.",
                code="AUTHENTICATION_ERROR",
                details={"provider": "groq", "original_error": str(e)},
            ) from e
        except RateLimitError as e:
            raise TransportError(
                "groq: rate limit exceeded. Please try again in a few moments.",
                code="RATE_LIMIT_ERROR",
                details={"provider": "groq", "retry_after": 60, "original_error": str(e)},
            ) from e
        except APITimeoutError as e:
            raise TransportError(
                "groq: request timed out. Please try again.",
                code="TIMEOUT_ERROR",
                details={"provider": "groq", "original_error": str(e)},
            ) from e
        except APIError as e:
            raise TransportError(
                f"groq: API error: {e}",
                code="API_ERROR",
                details={"provider": "groq", "original_error": str(e)},
            ) from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except APIError as e:
            logger.error(f"groq: stream interrupted: {e}")
            raise StreamError(
                "groq: connection lost while streaming",
                details={"provider": "groq", "original_error": str(e)},
            ) from e
        finally:
            await stream.close()


class MockCompletion:
    """Echoes the last user message inside a canned reply, one character at a time."""

    RESPONSE_TEMPLATE = (
        "[Development Mode Response]\n\n"
        'I received your question: "{question}"\n\n'
        "In production, this would generate a real AI response based on "
        "your documentation. The mock mode is working correctly!"
    )

    def __init__(self, delay: float = MOCK_STREAM_DELAY):
        self.delay = delay

    def build_response(self, messages: Sequence[ChatMessage]) -> str:
        question = next(
            (m.content for m in reversed(messages) if m.role == Role.USER),
            "",
        )
        return self.RESPONSE_TEMPLATE.format(question=question)

    async def generate_chat_completion(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        for char in self.build_response(messages):
            yield char
            await asyncio.sleep(self.delay)
