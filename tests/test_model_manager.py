"""Tests for the model activation / deletion / resync lifecycle."""

from unittest.mock import MagicMock

import docker
import pytest

from owngpt_orchestrator.docker_manager import DockerManager
from owngpt_orchestrator.errors import (
    ActivationError,
    InputValidationError,
    ReadinessTimeoutError,
    RuntimeInvocationError,
    UnitNotFoundError,
)
from owngpt_orchestrator.model_manager import ModelManager
from owngpt_orchestrator.models.schemas import ActiveModel, AvailableModel, ContainerInfo
from owngpt_orchestrator.state import ModelState


def _running(container_name: str) -> ActiveModel:
    return ActiveModel(container_name=container_name, port=11434, is_running=True)


# =============================================================================
# Fresh activation
# =============================================================================

@pytest.mark.asyncio
async def test_activate_builds_runs_and_publishes(manager, state, docker_mock, probe_mock, config):
    result = await manager.activate("mistral")

    assert result.already_exists is False
    assert result.container_name == "ollama-mistral-container"
    assert result.port == 11434
    assert (config.models_dir / "Dockerfile").exists()
    docker_mock.build.assert_awaited_once_with(config.models_dir, "ollama-mistral")
    docker_mock.run.assert_awaited_once_with("ollama-mistral", "ollama-mistral-container", 11434)
    probe_mock.wait_until_ready.assert_awaited_once_with("ollama-mistral-container", 300)
    assert state.current == _running("ollama-mistral-container")


@pytest.mark.asyncio
async def test_activate_order_and_no_publish_before_run(manager, state, docker_mock, probe_mock):
    calls = []

    async def build(*args):
        assert state.current.is_running is False
        calls.append("build")

    async def run(*args):
        assert state.current.is_running is False
        calls.append("run")

    async def wait(*args):
        calls.append("probe")

    docker_mock.build.side_effect = build
    docker_mock.run.side_effect = run
    probe_mock.wait_until_ready.side_effect = wait

    await manager.activate("mistral")

    assert calls == ["build", "run", "probe"]


@pytest.mark.asyncio
async def test_activate_is_idempotent(manager, docker_mock):
    first = await manager.activate("mistral")
    second = await manager.activate("mistral")

    assert first.already_exists is False
    assert second.already_exists is True
    assert second.container_name == "ollama-mistral-container"
    docker_mock.build.assert_awaited_once()
    docker_mock.run.assert_awaited_once()


@pytest.mark.asyncio
async def test_activate_matches_by_substring(docker_mock, probe_mock, config):
    # "llama2" is a substring of the current llama2-13b container name
    state = ModelState(_running("ollama-llama2-13b-container"))
    manager = ModelManager(state, docker_mock, probe_mock, config)

    result = await manager.activate("llama2")

    assert result.already_exists is True
    assert result.container_name == "ollama-llama2-13b-container"
    docker_mock.unit_exists.assert_not_awaited()
    docker_mock.build.assert_not_awaited()


@pytest.mark.asyncio
async def test_activate_another_model_releases_current(docker_mock, probe_mock, config):
    state = ModelState(_running("ollama-llama2-container"))
    manager = ModelManager(state, docker_mock, probe_mock, config)
    seen_during_build = []

    async def build(*args):
        seen_during_build.append(state.current)

    docker_mock.build.side_effect = build

    await manager.activate("mistral")

    (during,) = seen_during_build
    assert during.container_name == "ollama-llama2-container"
    assert during.is_running is False
    assert state.current == _running("ollama-mistral-container")


@pytest.mark.asyncio
async def test_activate_requires_a_name(manager, docker_mock, probe_mock):
    for blank in ("", "   ", None):
        with pytest.raises(InputValidationError):
            await manager.activate(blank)

    docker_mock.unit_exists.assert_not_awaited()
    docker_mock.build.assert_not_awaited()
    probe_mock.wait_until_ready.assert_not_awaited()


# =============================================================================
# Failure stages
# =============================================================================

@pytest.mark.asyncio
async def test_build_failure(manager, state, docker_mock, probe_mock):
    docker_mock.build.side_effect = RuntimeInvocationError("docker build", "manifest unknown")

    with pytest.raises(ActivationError) as exc_info:
        await manager.activate("nonexistent-model")

    assert exc_info.value.stage == "build"
    assert str(exc_info.value).startswith("Failed to build Docker image")
    docker_mock.run.assert_not_awaited()
    probe_mock.wait_until_ready.assert_not_awaited()
    assert state.current.is_running is False


@pytest.mark.asyncio
async def test_build_context_write_failure(state, docker_mock, probe_mock, config):
    writer = MagicMock(side_effect=PermissionError("read-only file system"))
    manager = ModelManager(state, docker_mock, probe_mock, config, context_writer=writer)

    with pytest.raises(ActivationError) as exc_info:
        await manager.activate("mistral")

    assert exc_info.value.stage == "build"
    docker_mock.build.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_failure_leaves_record_unpublished(manager, state, docker_mock, probe_mock):
    docker_mock.run.side_effect = RuntimeInvocationError("docker run", "port is already allocated")

    with pytest.raises(ActivationError) as exc_info:
        await manager.activate("mistral")

    assert exc_info.value.stage == "run"
    assert str(exc_info.value).startswith("Failed to run Docker container")
    assert state.current == ActiveModel()
    probe_mock.wait_until_ready.assert_not_awaited()


@pytest.mark.asyncio
async def test_readiness_timeout_keeps_optimistic_record(manager, state, probe_mock):
    probe_mock.wait_until_ready.side_effect = ReadinessTimeoutError(
        "ollama-mistral-container", 300.0, 150
    )

    with pytest.raises(ActivationError) as exc_info:
        await manager.activate("mistral")

    assert exc_info.value.stage == "start"
    assert str(exc_info.value).startswith("Model failed to start")
    assert state.current == _running("ollama-mistral-container")


@pytest.mark.asyncio
async def test_publish_after_ready_when_not_optimistic(state, docker_mock, probe_mock, config):
    config.publish_before_ready = False
    manager = ModelManager(state, docker_mock, probe_mock, config)
    seen_during_probe = []

    async def wait(*args):
        seen_during_probe.append(state.current)

    probe_mock.wait_until_ready.side_effect = wait

    await manager.activate("mistral")

    assert seen_during_probe == [ActiveModel()]
    assert state.current == _running("ollama-mistral-container")


@pytest.mark.asyncio
async def test_timeout_without_optimistic_publish_leaves_no_record(state, docker_mock, probe_mock, config):
    config.publish_before_ready = False
    manager = ModelManager(state, docker_mock, probe_mock, config)
    probe_mock.wait_until_ready.side_effect = ReadinessTimeoutError("ollama-mistral-container", 300.0, 150)

    with pytest.raises(ActivationError):
        await manager.activate("mistral")

    assert state.current.is_running is False


# =============================================================================
# Existing containers
# =============================================================================

@pytest.mark.asyncio
async def test_existing_container_is_started(manager, state, docker_mock, probe_mock):
    docker_mock.unit_exists.return_value = True

    result = await manager.activate("mistral")

    assert result.already_exists is True
    docker_mock.start_existing.assert_awaited_once_with("ollama-mistral-container")
    probe_mock.wait_until_ready.assert_awaited_once_with("ollama-mistral-container", 30)
    docker_mock.build.assert_not_awaited()
    docker_mock.run.assert_not_awaited()
    assert state.current == _running("ollama-mistral-container")


@pytest.mark.asyncio
async def test_existing_container_not_ready_falls_back_to_rebuild(manager, state, docker_mock, probe_mock):
    docker_mock.unit_exists.return_value = True
    probe_mock.wait_until_ready.side_effect = [
        ReadinessTimeoutError("ollama-mistral-container", 30.0, 15),
        None,
    ]

    result = await manager.activate("mistral")

    assert result.already_exists is False
    docker_mock.build.assert_awaited_once()
    docker_mock.run.assert_awaited_once()
    timeouts = [c.args[1] for c in probe_mock.wait_until_ready.await_args_list]
    assert timeouts == [30, 300]
    assert state.current == _running("ollama-mistral-container")


@pytest.mark.asyncio
async def test_existing_container_start_failure_falls_back_to_rebuild(manager, docker_mock, probe_mock):
    docker_mock.unit_exists.return_value = True
    docker_mock.start_existing.side_effect = RuntimeInvocationError("docker start", "no such image")

    result = await manager.activate("mistral")

    assert result.already_exists is False
    docker_mock.build.assert_awaited_once()
    probe_mock.wait_until_ready.assert_awaited_once_with("ollama-mistral-container", 300)


# =============================================================================
# Delete / resync
# =============================================================================

@pytest.mark.asyncio
async def test_delete_current_model_clears_record(docker_mock, probe_mock, config):
    state = ModelState(_running("ollama-llama2-13b-container"))
    manager = ModelManager(state, docker_mock, probe_mock, config)

    await manager.delete_model("llama2:13b")

    docker_mock.delete_unit.assert_awaited_once_with("llama2-13b")
    assert state.current == ActiveModel()


@pytest.mark.asyncio
async def test_delete_other_model_keeps_record(docker_mock, probe_mock, config):
    state = ModelState(_running("ollama-mistral-container"))
    manager = ModelManager(state, docker_mock, probe_mock, config)

    await manager.delete_model("llama2")

    assert state.current == _running("ollama-mistral-container")


@pytest.mark.asyncio
async def test_delete_missing_model(manager, docker_mock):
    docker_mock.delete_unit.side_effect = UnitNotFoundError("docker rm", "No such container")

    with pytest.raises(UnitNotFoundError):
        await manager.delete_model("ghost")


@pytest.mark.asyncio
async def test_delete_requires_a_name(manager, docker_mock):
    with pytest.raises(InputValidationError):
        await manager.delete_model("")
    docker_mock.delete_unit.assert_not_awaited()


@pytest.mark.asyncio
async def test_resync_picks_first_running(manager, state, docker_mock):
    docker_mock.list_units.return_value = [
        ContainerInfo(name="llama2", container_name="ollama-llama2-container",
                      status="Exited (0)", ports="", is_running=False),
        ContainerInfo(name="mistral", container_name="ollama-mistral-container",
                      status="Up 2 hours", ports="0.0.0.0:11434->11434/tcp", is_running=True),
    ]

    record = await manager.resync()

    assert record == _running("ollama-mistral-container")
    assert state.current == record


@pytest.mark.asyncio
async def test_resync_without_running_units_resets(docker_mock, probe_mock, config):
    state = ModelState(_running("ollama-mistral-container"))
    manager = ModelManager(state, docker_mock, probe_mock, config)

    record = await manager.resync()

    assert record.is_running is False
    assert state.current == ActiveModel()


# =============================================================================
# Views
# =============================================================================

@pytest.mark.asyncio
async def test_available_models_merges_local_images(manager, docker_mock):
    docker_mock.list_local_models.return_value = [
        AvailableModel(name="mistral", description="Locally available model", size="4.1GB"),
        AvailableModel(name="tinyllama", description="Locally available model", size="600.0MB"),
    ]

    models = await manager.available_models()
    names = [m.name for m in models]

    assert names.count("mistral") == 1
    assert names[-1] == "tinyllama"
    assert models[0].official is True


@pytest.mark.asyncio
async def test_available_models_survives_docker_failure(manager, docker_mock):
    docker_mock.list_local_models.side_effect = RuntimeInvocationError("docker images", "daemon down")

    models = await manager.available_models()

    assert len(models) == 10


@pytest.mark.asyncio
async def test_system_info(manager, docker_mock):
    info = await manager.system_info()
    assert info.gpu_available is False
    assert info.memory_limit == "4GB"
    assert info.message.startswith("CPU only")

    docker_mock.accelerator_available.return_value = True
    info = await manager.system_info()
    assert info.gpu_available is True
    assert "GPU acceleration available" in info.message


# =============================================================================
# Lock discipline
# =============================================================================

@pytest.mark.asyncio
async def test_lock_not_held_during_rebuild(manager, state, docker_mock, probe_mock):
    """build, run and the readiness wait all happen outside the state lock."""
    observed = {}

    def recorder(stage):
        async def record(*args):
            observed[stage] = (state.lock.readers, state.lock.writer_active)
        return record

    docker_mock.build.side_effect = recorder("build")
    docker_mock.run.side_effect = recorder("run")
    probe_mock.wait_until_ready.side_effect = recorder("probe")

    await manager.activate("mistral")

    assert observed == {"build": (0, False), "run": (0, False), "probe": (0, False)}


@pytest.mark.asyncio
async def test_lock_not_held_while_restarting_existing(manager, state, docker_mock, probe_mock):
    observed = []

    async def record(*args):
        observed.append((state.lock.readers, state.lock.writer_active))

    docker_mock.unit_exists.return_value = True
    docker_mock.start_existing.side_effect = record
    probe_mock.wait_until_ready.side_effect = record

    result = await manager.activate("mistral")

    assert result.already_exists is True
    assert observed == [(0, False), (0, False)]


@pytest.mark.asyncio
async def test_lock_not_held_during_delete_or_resync(manager, state, docker_mock):
    observed = []

    async def delete(*args):
        observed.append((state.lock.readers, state.lock.writer_active))

    async def list_units():
        observed.append((state.lock.readers, state.lock.writer_active))
        return []

    docker_mock.delete_unit.side_effect = delete
    docker_mock.list_units.side_effect = list_units

    await manager.delete_model("mistral")
    await manager.resync()

    assert observed == [(0, False), (0, False)]


# =============================================================================
# Unreachable Docker daemon
# =============================================================================

@pytest.fixture
def offline_manager(state, probe_mock, config):
    client = docker.DockerClient(base_url="unix:///nonexistent-owngpt/docker.sock", version="1.41")
    yield ModelManager(state, DockerManager(config, client=client), probe_mock, config)
    client.close()


@pytest.mark.asyncio
async def test_activate_with_daemon_gone_fails_at_build(offline_manager, state, probe_mock):
    with pytest.raises(ActivationError) as exc_info:
        await offline_manager.activate("mistral")

    assert exc_info.value.stage == "build"
    assert isinstance(exc_info.value.cause, RuntimeInvocationError)
    probe_mock.wait_until_ready.assert_not_awaited()
    assert state.current.is_running is False


@pytest.mark.asyncio
async def test_resync_and_delete_with_daemon_gone(offline_manager):
    with pytest.raises(RuntimeInvocationError):
        await offline_manager.resync()
    with pytest.raises(RuntimeInvocationError):
        await offline_manager.delete_model("mistral")
