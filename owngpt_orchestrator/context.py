"""
Service wiring.

The server owns one ServiceContext; the current-model state inside it is
shared by reference between the lifecycle manager and the chat relay.
"""

from dataclasses import dataclass
from typing import Optional

from .chat_relay import ChatRelay
from .config import OrchestratorConfig, get_config
from .docker_manager import DockerManager
from .model_manager import ModelManager
from .ollama_client import OllamaClient
from .readiness import ReadinessProbe
from .state import ModelState


@dataclass
class ServiceContext:
    config: OrchestratorConfig
    state: ModelState
    docker: DockerManager
    probe: ReadinessProbe
    ollama: OllamaClient
    models: ModelManager
    chat: ChatRelay


def build_context(config: Optional[OrchestratorConfig] = None) -> ServiceContext:
    """Create the production object graph."""
    config = config or get_config()
    state = ModelState()
    docker_manager = DockerManager(config)
    probe = ReadinessProbe(config)
    ollama = OllamaClient(config)
    return ServiceContext(
        config=config,
        state=state,
        docker=docker_manager,
        probe=probe,
        ollama=ollama,
        models=ModelManager(state, docker_manager, probe, config),
        chat=ChatRelay(state, ollama),
    )
