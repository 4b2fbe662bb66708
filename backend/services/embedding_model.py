"""Embedding providers: OpenAI-compatible, Google, Pinecone and a deterministic mock."""
import asyncio
import logging
import time
from functools import partial
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
import numpy as np

from config import (
    DEFAULT_EMBEDDING_MODELS,
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_MAX_CONCURRENCY,
    MOCK_EMBEDDING_DIMENSION,
    REQUEST_TIMEOUT,
)
from services.errors import ParseError, TransportError, transport_error_for_status

logger = logging.getLogger(__name__)

Vector = List[float]
# (url, headers, json payload) for one batch request
Request = Tuple[str, Dict[str, str], Dict[str, Any]]

RETRYABLE_STATUS = {500, 502, 503, 504}


class HTTPEmbeddingClient:
    """
    Batched, retrying JSON POST client shared by the network-backed providers.

    Texts are split into batches which are sent concurrently (bounded by
    `max_concurrency`) and re-joined in input order. 5xx responses and
    timeouts are retried with exponential backoff; auth and rate-limit
    failures are raised immediately.
    """

    def __init__(
        self,
        provider: str,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        max_concurrency: int = EMBEDDING_MAX_CONCURRENCY,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if batch_size < 1 or max_concurrency < 1:
            raise ValueError("batch_size and max_concurrency must be positive")

        self.provider = provider
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.transport = transport

    async def embed(self, texts: Sequence[str], build_request, parse_response) -> List[Vector]:
        """
        Embed `texts` in batches.

        Args:
            texts: Texts to embed
            build_request: Callable(batch) -> (url, headers, payload)
            parse_response: Callable(json) -> list of vectors for the batch

        Returns:
            One vector per input text, in input order

        Raises:
            TransportError: If any batch fails after all retries
            ParseError: If a response cannot be decoded into vectors
        """
        if not texts:
            return []

        batches = [list(texts[i:i + self.batch_size]) for i in range(0, len(texts), self.batch_size)]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:

            async def run(batch: List[str]) -> List[Vector]:
                async with semaphore:
                    url, headers, payload = build_request(batch)
                    data = await self._post_with_retry(client, url, headers, payload)
                    try:
                        vectors = parse_response(data)
                    except (KeyError, TypeError, AttributeError) as e:
                        raise ParseError(
                            f"{self.provider}: unexpected embedding response shape",
                            details={"provider": self.provider, "original_error": str(e)},
                        ) from e
                    if len(vectors) != len(batch):
                        raise ParseError(
                            f"{self.provider}: expected {len(batch)} embeddings, got {len(vectors)}",
                            details={"provider": self.provider},
                        )
                    return vectors

            results = await asyncio.gather(*(run(batch) for batch in batches))

        embeddings = [vector for batch_vectors in results for vector in batch_vectors]
        logger.debug(f"{self.provider}: generated {len(embeddings)} embeddings in {len(batches)} batches")
        return embeddings

    async def _post_with_retry(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any]
    ) -> Any:
        delay = self.initial_delay
        last_error: Optional[TransportError] = None

        for attempt in range(self.max_retries):
            start_time = time.time()
            try:
                response = await client.post(url, headers=headers, json=payload)
            except httpx.TimeoutException as e:
                last_error = TransportError(
                    f"{self.provider}: request timeout after {self.timeout}s",
                    code="TIMEOUT_ERROR",
                    details={"provider": self.provider, "original_error": str(e)},
                )
            except httpx.RequestError as e:
                last_error = TransportError(
                    f"{self.provider}: network error: {e}",
                    code="NETWORK_ERROR",
                    details={"provider": self.provider, "original_error": str(e)},
                )
            else:
                if response.status_code == 200:
                    logger.debug(f"{self.provider}: embedding request took {time.time() - start_time:.2f}s")
                    try:
                        return response.json()
                    except ValueError as e:
                        raise ParseError(f"{self.provider}: invalid JSON in embedding response") from e

                error = transport_error_for_status(self.provider, response.status_code, response.text)
                if response.status_code not in RETRYABLE_STATUS:
                    logger.error(error.error.message)
                    raise error
                last_error = error

            logger.warning(
                f"{last_error.error.message} on attempt {attempt + 1}/{self.max_retries}"
            )
            if attempt < self.max_retries - 1:
                await asyncio.sleep(delay)
                delay = min(delay * 2, 30.0)

        logger.error(f"{self.provider}: embeddings failed after {self.max_retries} attempts")
        raise last_error


class OpenAIEmbeddings:
    """OpenAI-compatible `/embeddings` endpoint (`{model, input}` -> `data[].embedding`)."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        **client_options
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_EMBEDDING_MODELS["openai"]
        self.base_url = base_url.rstrip("/")
        self.client = HTTPEmbeddingClient("openai", **client_options)
        logger.info(f"Initialized OpenAIEmbeddings with model: {self.model}")

    async def generate_embeddings(self, texts: Sequence[str]) -> List[Vector]:
        return await self.client.embed(texts, self._build_request, self._parse_response)

    async def generate_query_embeddings(self, texts: Sequence[str]) -> List[Vector]:
        return await self.generate_embeddings(texts)

    def _build_request(self, batch: List[str]) -> Request:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        return f"{self.base_url}/embeddings", headers, {"model": self.model, "input": batch}

    @staticmethod
    def _parse_response(data: Dict[str, Any]) -> List[Vector]:
        items = data.get("data", [])
        if all("index" in item for item in items):
            items = sorted(items, key=lambda item: item["index"])
        return [item["embedding"] for item in items]


class GoogleEmbeddings:
    """Google Generative Language `batchEmbedContents` endpoint."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        **client_options
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_EMBEDDING_MODELS["google-genai"]
        self.base_url = base_url.rstrip("/")
        self.client = HTTPEmbeddingClient("google-genai", **client_options)
        logger.info(f"Initialized GoogleEmbeddings with model: {self.model}")

    async def generate_embeddings(self, texts: Sequence[str]) -> List[Vector]:
        return await self.client.embed(texts, self._build_request, self._parse_response)

    async def generate_query_embeddings(self, texts: Sequence[str]) -> List[Vector]:
        return await self.generate_embeddings(texts)

    def _build_request(self, batch: List[str]) -> Request:
        model_path = f"models/{self.model}"
        payload = {
            "requests": [
                {"model": model_path, "content": {"parts": [{"text": text}]}}
                for text in batch
            ]
        }
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        return f"{self.base_url}/{model_path}:batchEmbedContents", headers, payload

    @staticmethod
    def _parse_response(data: Dict[str, Any]) -> List[Vector]:
        return [item["values"] for item in data.get("embeddings", [])]


class PineconeEmbeddings:
    """
    Pinecone inference `/embed` endpoint.

    Asymmetric models embed documents and queries differently, so corpus
    chunks are sent as `passage` inputs and retrieval queries as `query`.
    """

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: str = "https://api.pinecone.io",
        input_type: str = "passage",
        query_input_type: str = "query",
        **client_options
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_EMBEDDING_MODELS["pinecone"]
        self.base_url = base_url.rstrip("/")
        self.input_type = input_type
        self.query_input_type = query_input_type
        self.client = HTTPEmbeddingClient("pinecone", **client_options)
        logger.info(f"Initialized PineconeEmbeddings with model: {self.model}")

    async def generate_embeddings(self, texts: Sequence[str]) -> List[Vector]:
        build_request = partial(self._build_request, input_type=self.input_type)
        return await self.client.embed(texts, build_request, self._parse_response)

    async def generate_query_embeddings(self, texts: Sequence[str]) -> List[Vector]:
        build_request = partial(self._build_request, input_type=self.query_input_type)
        return await self.client.embed(texts, build_request, self._parse_response)

    def _build_request(self, batch: List[str], input_type: str) -> Request:
        headers = {
            "Api-Key": self.api_key,
            "X-Pinecone-API-Version": "2024-10",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "parameters": {"input_type": input_type, "truncate": "END"},
            "inputs": [{"text": text} for text in batch],
        }
        return f"{self.base_url}/embed", headers, payload

    @staticmethod
    def _parse_response(data: Dict[str, Any]) -> List[Vector]:
        return [item["values"] for item in data.get("data", [])]


class MockEmbeddings:
    """
    Deterministic, network-free embeddings for offline development and tests.

    Each vector is drawn from a generator seeded with a stable hash of the
    text, so the same text always maps to the same vector regardless of
    call order or process.
    """

    def __init__(self, dimension: int = MOCK_EMBEDDING_DIMENSION):
        self.dimension = dimension

    async def generate_embeddings(self, texts: Sequence[str]) -> List[Vector]:
        return [self.embed_text(text) for text in texts]

    async def generate_query_embeddings(self, texts: Sequence[str]) -> List[Vector]:
        return await self.generate_embeddings(texts)

    def embed_text(self, text: str) -> Vector:
        rng = np.random.default_rng(stable_hash(text))
        return rng.uniform(-1.0, 1.0, self.dimension).tolist()


def stable_hash(text: str) -> int:
    """31-multiplier rolling string hash folded to a non-negative 32-bit value."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return value
