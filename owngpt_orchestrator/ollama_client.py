"""
Ollama inference client.

Talks to a model container over the shared Docker network, addressing it by
container name on the fixed Ollama port. Supports a blocking whole-response
call and an incremental stream.
"""

import asyncio
import logging
from typing import List, Optional, Union

import httpx
from pydantic import ValidationError

from .config import OrchestratorConfig, get_config
from .errors import InferenceError
from .models.schemas import (
    GenerateOptions,
    GenerateRequest,
    GenerateResponse,
    StreamChunk,
)
from .naming import model_from_container

logger = logging.getLogger("OwnGPT.Orchestrator.Ollama")


class _Closed:
    """Queue sentinel: the producer has finished."""


_CLOSED = _Closed()

_QueueItem = Union[StreamChunk, InferenceError, _Closed]


class InferenceStream:
    """An in-progress streamed generation.

    A producer task decodes the response body and feeds a bounded queue;
    iterating the stream drains it in order. The sequence ends either with
    one ``final`` chunk carrying the full text, or with an InferenceError
    raised from iteration. Never both. A stream cannot be restarted.
    """

    def __init__(self, maxsize: int = 10):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._task: Optional[asyncio.Task] = None
        self._exhausted = False
        self.completed = False
        self.error: Optional[InferenceError] = None
        self.full_text: Optional[str] = None

    def _start(self, producer) -> None:
        self._task = asyncio.create_task(self._produce(producer), name="ollama-stream")

    async def _produce(self, producer) -> None:
        # Cancellation (aclose) skips both puts: nobody is reading anymore
        try:
            await producer(self._queue)
        except InferenceError as e:
            await self._queue.put(e)
        except httpx.HTTPError as e:
            await self._queue.put(InferenceError(f"stream request failed: {e}"))
        except Exception as e:
            logger.exception(f"Stream producer crashed: {e}")
            await self._queue.put(InferenceError(f"stream failed: {e}"))
        await self._queue.put(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> StreamChunk:
        if self._exhausted:
            raise StopAsyncIteration
        item: _QueueItem = await self._queue.get()
        if isinstance(item, _Closed):
            self._exhausted = True
            raise StopAsyncIteration
        if isinstance(item, InferenceError):
            self._exhausted = True
            self.error = item
            raise item
        if item.final:
            self.completed = True
            self.full_text = item.text
        return item

    async def collect(self) -> List[StreamChunk]:
        """Drain the stream into a list (raises on a terminal error)."""
        return [chunk async for chunk in self]

    async def aclose(self) -> None:
        """Stop the producer if the consumer gives up early."""
        self._exhausted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass


class OllamaClient:
    """HTTP client for the Ollama generate API inside model containers."""

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        options: Optional[GenerateOptions] = None,
    ):
        self.config = config or get_config()
        self._transport = transport
        self.options = options or GenerateOptions()
        self._http: Optional[httpx.AsyncClient] = None

    def generate_url(self, container_name: str) -> str:
        return f"http://{container_name}:{self.config.inference_port}/api/generate"

    def build_request(self, prompt: str, container_name: str, stream: bool) -> GenerateRequest:
        return GenerateRequest(
            model=model_from_container(container_name),
            prompt=prompt,
            stream=stream,
            options=self.options,
        )

    @property
    def http(self) -> httpx.AsyncClient:
        """Shared connection pool for all generate calls (created lazily)."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self.config.inference_timeout_seconds,
                limits=httpx.Limits(
                    max_keepalive_connections=self.config.inference_max_idle_connections,
                    keepalive_expiry=self.config.inference_idle_timeout_seconds,
                ),
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        """Close the connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def generate(self, prompt: str, container_name: str) -> str:
        """Send a prompt and return the whole response text."""
        payload = self.build_request(prompt, container_name, stream=False)
        url = self.generate_url(container_name)
        logger.debug(f"POST {url} (model={payload.model})")

        try:
            response = await self.http.post(url, json=payload.model_dump())
        except httpx.HTTPError as e:
            raise InferenceError(f"request to {container_name} failed: {e}") from e

        if response.status_code != 200:
            raise InferenceError(
                f"ollama API returned status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            return GenerateResponse.model_validate_json(response.content).response
        except ValidationError as e:
            raise InferenceError(f"malformed response from {container_name}: {e}") from e

    def stream(self, prompt: str, container_name: str) -> InferenceStream:
        """Start a streamed generation; must be called from a running event loop."""
        payload = self.build_request(prompt, container_name, stream=True)
        url = self.generate_url(container_name)
        logger.debug(f"POST {url} (model={payload.model}, stream)")

        async def produce(queue: asyncio.Queue) -> None:
            parts: List[str] = []
            async with self.http.stream("POST", url, json=payload.model_dump()) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode(errors="replace")
                    raise InferenceError(
                        f"ollama API returned status {response.status_code}: {body}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        part = GenerateResponse.model_validate_json(line)
                    except ValidationError as e:
                        raise InferenceError(f"malformed stream line from {container_name}: {e}") from e
                    if part.response:
                        parts.append(part.response)
                        await queue.put(StreamChunk(text=part.response))
                    if part.done:
                        break
            await queue.put(StreamChunk(text="".join(parts), final=True))

        stream = InferenceStream(maxsize=self.config.stream_queue_size)
        stream._start(produce)
        return stream
