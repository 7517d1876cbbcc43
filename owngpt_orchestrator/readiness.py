"""
Readiness polling for freshly started model containers.

A container is ready once Ollama answers GET /api/tags with a 2xx status.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from .config import OrchestratorConfig, get_config
from .errors import ReadinessTimeoutError

logger = logging.getLogger("OwnGPT.Orchestrator.Readiness")


class ReadinessProbe:
    """Polls a container's Ollama endpoint until it answers or a deadline passes."""

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or get_config()
        self._transport = transport
        # Swappable so tests can drive the deadline without real waits
        self._clock = time.monotonic
        self._sleep = asyncio.sleep

    @property
    def poll_interval(self) -> float:
        return self.config.poll_interval_seconds

    @property
    def attempt_timeout(self) -> float:
        # A hung attempt must not stall the wait beyond one poll interval
        return min(self.config.probe_attempt_timeout_seconds, self.poll_interval)

    def tags_url(self, container_name: str) -> str:
        return f"http://{container_name}:{self.config.inference_port}/api/tags"

    async def _poll_once(self, client: httpx.AsyncClient, url: str) -> bool:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.debug(f"Readiness poll of {url} failed: {type(e).__name__}: {e}")
            return False
        if 200 <= response.status_code < 300:
            return True
        logger.debug(f"Readiness poll of {url} returned {response.status_code}")
        return False

    async def wait_until_ready(self, container_name: str, timeout: float) -> None:
        """Block until the container answers, or raise ReadinessTimeoutError.

        Args:
            container_name: Container to poll; must resolve as a host name.
            timeout: Overall deadline in seconds.
        """
        url = self.tags_url(container_name)
        started = self._clock()
        deadline = started + timeout
        polls = 0

        logger.info(f"Waiting up to {timeout:.0f}s for {container_name} to become ready...")

        async with httpx.AsyncClient(
            timeout=self.attempt_timeout, transport=self._transport
        ) as client:
            while self._clock() < deadline:
                polls += 1
                if await self._poll_once(client, url):
                    logger.info(
                        f"Model is ready: {container_name} after "
                        f"{self._clock() - started:.1f}s ({polls} polls)"
                    )
                    return
                await self._sleep(self.poll_interval)

        elapsed = self._clock() - started
        logger.warning(f"{container_name} not ready after {elapsed:.1f}s ({polls} polls)")
        raise ReadinessTimeoutError(container_name, elapsed, polls)
