"""
Docker management for OwnGPT Orchestrator.

Wraps the Docker SDK to provide the model-container lifecycle: image
builds, container run/start/remove, container listing and GPU detection.
Blocking SDK calls run in the default executor.
"""

import asyncio
import functools
import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import docker
from docker.errors import BuildError, DockerException, ImageNotFound, NotFound
from docker.types import DeviceRequest
from requests.exceptions import RequestException

from .config import OrchestratorConfig, get_config
from .errors import RuntimeInvocationError, UnitNotFoundError
from .models.schemas import AvailableModel, ContainerInfo
from .naming import (
    CONTAINER_SUFFIX,
    IMAGE_PREFIX,
    is_model_container,
    model_from_container,
)

logger = logging.getLogger("OwnGPT.Orchestrator.Docker")

# Substring of Docker's status text that marks a running container
RUNNING_MARKER = "Up"

# Port Ollama listens on inside every container
OLLAMA_CONTAINER_PORT = "11434/tcp"


def _format_ports(ports: List[Dict[str, Any]]) -> str:
    """Render the low-level API port list like `docker ps` does."""
    rendered = []
    for p in ports or []:
        private = f"{p.get('PrivatePort')}/{p.get('Type', 'tcp')}"
        if p.get("PublicPort"):
            ip = p.get("IP") or "0.0.0.0"
            rendered.append(f"{ip}:{p['PublicPort']}->{private}")
        else:
            rendered.append(private)
    return ", ".join(rendered)


def _format_size(size_bytes: int) -> str:
    """Human-readable size in the decimal units Docker prints."""
    size = float(size_bytes)
    if size < 1000:
        return f"{int(size)}B"
    for unit in ("KB", "MB"):
        size /= 1000
        if size < 1000:
            return f"{size:.1f}{unit}"
    return f"{size / 1000:.1f}GB"


class DockerManager:
    """Manages Docker images and containers for model serving."""

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        client: Optional[docker.DockerClient] = None,
    ):
        self.config = config or get_config()
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        """Get or create Docker client."""
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                logger.error(f"Failed to connect to Docker: {e}")
                raise RuntimeInvocationError("docker connect", str(e)) from e
        return self._client

    async def _run_blocking(self, operation: str, fn: Callable, *args, **kwargs):
        """Run a blocking SDK call without stalling the event loop.

        The SDK lets transport errors from ``requests`` through (e.g. the
        daemon socket vanishing after the client was created); those are
        reported as RuntimeInvocationError for ``operation``.
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
        except RequestException as e:
            logger.error(f"Docker daemon unreachable during {operation}: {e}")
            raise RuntimeInvocationError(operation, f"Docker daemon unreachable: {e}") from e

    # =========================================================================
    # Container queries
    # =========================================================================

    async def unit_exists(self, container_name: str) -> bool:
        """True if a container with exactly this name exists (running or not)."""

        def lookup() -> bool:
            try:
                self.client.containers.get(container_name)
                return True
            except NotFound:
                return False

        try:
            return await self._run_blocking("docker inspect", lookup)
        except (DockerException, RuntimeInvocationError) as e:
            logger.warning(f"Could not check container {container_name}: {e}")
            return False

    async def list_units(self) -> List[ContainerInfo]:
        """List every ollama-*-container, running or stopped."""

        def list_raw() -> List[Dict[str, Any]]:
            return self.client.api.containers(all=True, filters={"name": IMAGE_PREFIX})

        try:
            raw = await self._run_blocking("docker ps", list_raw)
        except DockerException as e:
            logger.error(f"Failed to list containers: {e}")
            raise RuntimeInvocationError("docker ps", str(e)) from e

        units = []
        for entry in raw:
            names = [n.lstrip("/") for n in entry.get("Names") or []]
            name = next((n for n in names if is_model_container(n)), None)
            if name is None:
                continue
            status = entry.get("Status", "")
            units.append(ContainerInfo(
                name=model_from_container(name),
                container_name=name,
                status=status,
                ports=_format_ports(entry.get("Ports")),
                is_running=RUNNING_MARKER in status,
            ))
        return units

    # =========================================================================
    # Container lifecycle
    # =========================================================================

    async def start_existing(self, container_name: str) -> None:
        """Start an existing, stopped container."""

        def start() -> None:
            self.client.containers.get(container_name).start()

        try:
            await self._run_blocking("docker start", start)
        except NotFound as e:
            raise UnitNotFoundError("docker start", str(e)) from e
        except DockerException as e:
            logger.error(f"Error starting container {container_name}: {e}")
            raise RuntimeInvocationError("docker start", str(e)) from e
        logger.info(f"Started container: {container_name}")

    async def build(self, context_dir: Path, image_name: str) -> None:
        """Build an image from a prepared build context."""
        logger.info(f"Building image {image_name} from {context_dir}")

        def build_image() -> None:
            _, output = self.client.images.build(
                path=str(context_dir), tag=image_name, rm=True
            )
            for chunk in output:
                line = chunk.get("stream", "").strip()
                if line:
                    logger.debug(f"[build {image_name}] {line}")

        try:
            await self._run_blocking("docker build", build_image)
        except BuildError as e:
            logger.error(f"Build of {image_name} failed: {e.msg}")
            raise RuntimeInvocationError("docker build", e.msg) from e
        except DockerException as e:
            logger.error(f"Build of {image_name} failed: {e}")
            raise RuntimeInvocationError("docker build", str(e)) from e
        logger.info(f"Built image {image_name}")

    async def _remove_container(self, container_name: str) -> bool:
        """Force-remove a container. Returns False if it did not exist."""

        def remove() -> bool:
            try:
                self.client.containers.get(container_name).remove(force=True)
                return True
            except NotFound:
                return False

        return await self._run_blocking("docker rm", remove)

    async def run(self, image_name: str, container_name: str, port: int) -> None:
        """Run a fresh container for the image, replacing any same-named one."""
        try:
            if await self._remove_container(container_name):
                logger.info(f"Removed existing container {container_name}")
        except (DockerException, RuntimeInvocationError) as e:
            # A leftover that cannot be removed surfaces as a name conflict below
            logger.warning(f"Could not remove existing container {container_name}: {e}")

        kwargs: Dict[str, Any] = {
            "name": container_name,
            "detach": True,
            "ports": {OLLAMA_CONTAINER_PORT: port},
            "restart_policy": {"Name": "unless-stopped"},
            "mem_limit": self.config.container_memory_limit,
        }
        if self.config.docker_network:
            kwargs["network"] = self.config.docker_network

        if await self.accelerator_available():
            kwargs["device_requests"] = [DeviceRequest(count=-1, capabilities=[["gpu"]])]
            logger.info(
                f"Starting container {container_name} with GPU support and "
                f"{self.config.container_memory_limit} memory limit"
            )
        else:
            logger.info(
                f"Starting container {container_name} with CPU only and "
                f"{self.config.container_memory_limit} memory limit"
            )

        try:
            await self._run_blocking("docker run", self.client.containers.run, image_name, **kwargs)
        except DockerException as e:
            logger.error(f"Docker run failed for {container_name}: {e}")
            raise RuntimeInvocationError("docker run", str(e)) from e

    async def delete_unit(self, safe_name: str) -> None:
        """Force-remove a model's container, then its image (best effort)."""
        container_name = f"{IMAGE_PREFIX}{safe_name}{CONTAINER_SUFFIX}"
        image_name = f"{IMAGE_PREFIX}{safe_name}"

        try:
            removed = await self._remove_container(container_name)
        except DockerException as e:
            logger.error(f"Failed to remove container {container_name}: {e}")
            raise RuntimeInvocationError("docker rm", str(e)) from e
        if not removed:
            raise UnitNotFoundError("docker rm", f"No such container: {container_name}")
        logger.info(f"Removed container {container_name}")

        # Image removal is non-fatal: the container is already gone and a
        # leftover image only costs disk space.
        try:
            await self._run_blocking("docker rmi", self.client.images.remove, image_name, force=True)
            logger.info(f"Removed image {image_name}")
        except ImageNotFound:
            logger.debug(f"Image {image_name} already absent")
        except (DockerException, RuntimeInvocationError) as e:
            logger.warning(f"Could not remove image {image_name}: {e}")

    # =========================================================================
    # Host capabilities
    # =========================================================================

    async def accelerator_available(self) -> bool:
        """True if nvidia-smi works AND Docker can run a GPU container."""

        def nvidia_smi() -> bool:
            try:
                subprocess.run(["nvidia-smi"], capture_output=True, check=True, timeout=30)
                return True
            except (OSError, subprocess.SubprocessError) as e:
                logger.info(f"nvidia-smi not available: {e}")
                return False

        def gpu_trial_run() -> bool:
            try:
                self.client.containers.run(
                    self.config.gpu_probe_image,
                    remove=True,
                    device_requests=[DeviceRequest(count=-1, capabilities=[["gpu"]])],
                )
                return True
            except (DockerException, RequestException, RuntimeInvocationError) as e:
                logger.info(f"Docker GPU support not available: {e}")
                return False

        if not await self._run_blocking("nvidia-smi", nvidia_smi):
            return False
        if not await self._run_blocking("docker run --gpus", gpu_trial_run):
            return False
        logger.info("GPU support detected and available")
        return True

    async def list_local_models(self) -> List[AvailableModel]:
        """Models whose images were built locally (ollama-<name>:latest)."""

        def list_images():
            return self.client.images.list()

        try:
            images = await self._run_blocking("docker images", list_images)
        except DockerException as e:
            raise RuntimeInvocationError("docker images", str(e)) from e

        local = []
        for image in images:
            size = _format_size(image.attrs.get("Size", 0))
            for tag in image.tags:
                if "ollama" not in tag or "ollama/ollama" in tag:
                    continue
                if not tag.startswith(IMAGE_PREFIX):
                    continue
                name = tag[len(IMAGE_PREFIX):]
                if name.endswith(":latest"):
                    name = name[:-len(":latest")]
                local.append(AvailableModel(
                    name=name,
                    description="Locally available model",
                    size=size,
                    official=False,
                ))
        return local
