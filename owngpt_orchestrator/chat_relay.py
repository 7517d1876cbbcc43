"""
Chat relay: forwards prompts to whichever model is current.

Only the container name is read under the state lock; the lock is released
before the (possibly long) inference call.
"""

import logging

from .errors import InputValidationError, NoActiveModelError
from .ollama_client import InferenceStream, OllamaClient
from .state import ModelState

logger = logging.getLogger("OwnGPT.Orchestrator.Chat")


class ChatRelay:
    """Relays chat messages to the active model container."""

    def __init__(self, state: ModelState, client: OllamaClient):
        self.state = state
        self.client = client

    async def _active_container(self, message: str) -> str:
        if not (message or "").strip():
            raise InputValidationError("Message is required")
        current = await self.state.snapshot()
        if not current.is_running:
            raise NoActiveModelError()
        return current.container_name

    async def send(self, message: str) -> str:
        """Send a message and wait for the whole reply."""
        container = await self._active_container(message)
        logger.info(f"Sending message to model {container} ({len(message)} chars)")
        return await self.client.generate(message, container)

    async def stream(self, message: str) -> InferenceStream:
        """Send a message and return the incremental reply stream."""
        container = await self._active_container(message)
        logger.info(f"Streaming message to model {container} ({len(message)} chars)")
        return self.client.stream(message, container)
