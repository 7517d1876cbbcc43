"""
Model lifecycle management for OwnGPT Orchestrator.

Decides whether a requested model is already serviceable, reuses or
rebuilds its container, waits for readiness and publishes the current
model. Lock discipline: the state lock is only taken to read a snapshot or
to publish a new record, never across Docker or HTTP calls. Two concurrent
activations therefore race to publish and the last writer wins.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional

from .catalog import merge_catalog
from .config import OrchestratorConfig, get_config
from .docker_manager import DockerManager
from .dockerfile import write_build_context
from .errors import (
    ActivationError,
    InputValidationError,
    OrchestratorError,
    RuntimeInvocationError,
)
from .models.schemas import (
    ActivationResult,
    ActiveModel,
    AvailableModel,
    ContainerInfo,
    SystemInfo,
)
from .naming import container_name, image_name, safe_model_name
from .readiness import ReadinessProbe
from .state import ModelState

logger = logging.getLogger("OwnGPT.Orchestrator.Models")


def _require_model_name(model: Optional[str]) -> str:
    model = (model or "").strip()
    if not model:
        raise InputValidationError("Model name is required")
    return model


class ModelManager:
    """Orchestrates the activate / delete / resync lifecycle of model containers."""

    def __init__(
        self,
        state: ModelState,
        docker_manager: DockerManager,
        probe: ReadinessProbe,
        config: Optional[OrchestratorConfig] = None,
        context_writer: Callable[[str, Path], Path] = write_build_context,
    ):
        self.state = state
        self.docker = docker_manager
        self.probe = probe
        self.config = config or get_config()
        self._write_context = context_writer

    # =========================================================================
    # Activation
    # =========================================================================

    async def activate(self, model: str) -> ActivationResult:
        """Make ``model`` the current model, building its container if needed."""
        model = _require_model_name(model)
        safe_name = safe_model_name(model)
        logger.info(f"Activating model: {model}")

        # Already the current model
        current = await self.state.snapshot()
        if current.is_running and safe_name in current.container_name:
            logger.info(f"Model {model} already running as {current.container_name}")
            return ActivationResult(
                message="Model is already running and ready",
                model=model,
                container_name=current.container_name,
                port=current.port or self.config.host_port,
                already_exists=True,
            )

        # Existing (probably stopped) container
        target = container_name(model)
        if await self.docker.unit_exists(target):
            result = await self._restart_existing(model, target)
            if result is not None:
                return result
            logger.warning(f"Existing container {target} did not come up; rebuilding")

        return await self._rebuild(model, target)

    async def _restart_existing(self, model: str, target: str) -> Optional[ActivationResult]:
        """Start an existing container. Returns None when a rebuild is needed."""
        logger.info(f"Container {target} already exists, starting it")
        try:
            await self.docker.start_existing(target)
        except RuntimeInvocationError as e:
            logger.warning(f"Could not start existing container {target}: {e}")
            return None

        port = self.config.host_port
        await self.state.publish(ActiveModel(container_name=target, port=port, is_running=True))

        try:
            await self.probe.wait_until_ready(target, self.config.start_existing_timeout_seconds)
        except OrchestratorError as e:
            logger.warning(f"Existing container {target} failed readiness: {e}")
            return None

        return ActivationResult(
            message="Existing model container started successfully",
            model=model,
            container_name=target,
            port=port,
            already_exists=True,
        )

    async def _rebuild(self, model: str, target: str) -> ActivationResult:
        """Build the image, run a fresh container and wait for it."""
        # The previous container keeps running; it just stops being current.
        released = await self.state.release_current()
        if released is not None:
            logger.info(f"Stopping current model container: {released.container_name}")

        image = image_name(model)
        try:
            context_dir = self._write_context(model, self.config.models_dir)
        except OSError as e:
            logger.error(f"Failed to write build context for {model}: {e}")
            raise ActivationError("build", e) from e

        try:
            await self.docker.build(context_dir, image)
        except RuntimeInvocationError as e:
            raise ActivationError("build", e) from e

        port = self.config.host_port
        try:
            await self.docker.run(image, target, port)
        except RuntimeInvocationError as e:
            raise ActivationError("run", e) from e

        record = ActiveModel(container_name=target, port=port, is_running=True)
        if self.config.publish_before_ready:
            # Optimistic: the container may still be pulling the model, but a
            # failed probe below leaves it published since it may come up later.
            await self.state.publish(record)

        try:
            await self.probe.wait_until_ready(target, self.config.activation_timeout_seconds)
        except OrchestratorError as e:
            logger.error(f"Model {model} failed to start: {e}")
            raise ActivationError("start", e) from e

        if not self.config.publish_before_ready:
            await self.state.publish(record)

        logger.info(f"Model {model} created and container {target} started")
        return ActivationResult(
            message="Model created and container started successfully",
            model=model,
            container_name=target,
            port=port,
        )

    # =========================================================================
    # Deletion / Resync
    # =========================================================================

    async def delete_model(self, model: str) -> None:
        """Remove a model's container and image; clear it if it was current."""
        model = _require_model_name(model)
        safe_name = safe_model_name(model)
        await self.docker.delete_unit(safe_name)
        await self.state.reset_if_current(container_name(model))
        logger.info(f"Model {model} deleted")

    async def resync(self) -> ActiveModel:
        """Re-derive the current model from the containers Docker reports."""
        units = await self.docker.list_units()
        running = next((u for u in units if u.is_running), None)

        if running is None:
            record = ActiveModel()
        else:
            record = ActiveModel(
                container_name=running.container_name,
                port=self.config.host_port,
                is_running=True,
            )
        await self.state.publish(record)

        if record.is_running:
            logger.info(f"Current model refreshed: {record.container_name}")
        else:
            logger.info("No running model containers found")
        return record

    # =========================================================================
    # Views
    # =========================================================================

    async def current(self) -> ActiveModel:
        return await self.state.snapshot()

    async def list_models(self) -> List[ContainerInfo]:
        return await self.docker.list_units()

    async def available_models(self) -> List[AvailableModel]:
        try:
            local = await self.docker.list_local_models()
        except RuntimeInvocationError as e:
            logger.warning(f"Could not list local model images: {e}")
            local = []
        return merge_catalog(local)

    async def system_info(self) -> SystemInfo:
        gpu = await self.docker.accelerator_available()
        limit = self.config.container_memory_limit.upper()
        if not limit.endswith("B"):
            limit += "B"
        if gpu:
            message = f"GPU acceleration available - models will use GPU with {limit} memory limit"
        else:
            message = f"CPU only - models will use CPU with {limit} memory limit"
        return SystemInfo(gpu_available=gpu, memory_limit=limit, message=message)
