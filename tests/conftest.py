"""Shared fixtures for orchestrator tests."""

from unittest.mock import MagicMock

import pytest

from owngpt_orchestrator.config import OrchestratorConfig, reset_config
from owngpt_orchestrator.docker_manager import DockerManager
from owngpt_orchestrator.model_manager import ModelManager
from owngpt_orchestrator.readiness import ReadinessProbe
from owngpt_orchestrator.state import ModelState


class FakeClock:
    """Monotonic clock that only moves when the code under test sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def _reset_config_singleton():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path):
    return OrchestratorConfig(
        models_dir=tmp_path / "models",
        docker_network=None,
        poll_interval_seconds=2.0,
        probe_attempt_timeout_seconds=2.0,
        start_existing_timeout_seconds=30,
        activation_timeout_seconds=300,
        sse_heartbeat_seconds=5.0,
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def state():
    return ModelState()


@pytest.fixture
def docker_mock():
    """DockerManager stand-in: every coroutine method is an AsyncMock."""
    mock = MagicMock(spec=DockerManager)
    mock.unit_exists.return_value = False
    mock.list_units.return_value = []
    mock.list_local_models.return_value = []
    mock.accelerator_available.return_value = False
    return mock


@pytest.fixture
def probe_mock():
    mock = MagicMock(spec=ReadinessProbe)
    mock.wait_until_ready.return_value = None
    return mock


@pytest.fixture
def manager(state, docker_mock, probe_mock, config):
    return ModelManager(state, docker_mock, probe_mock, config)
