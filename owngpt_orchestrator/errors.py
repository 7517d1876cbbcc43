"""Exception hierarchy for the orchestrator."""

from typing import Optional


class OrchestratorError(Exception):
    """Base class for every error the orchestrator reports to callers."""


class InputValidationError(OrchestratorError):
    """A required input was missing or empty. Raised before any side effect."""


class RuntimeInvocationError(OrchestratorError):
    """A Docker call failed or the daemon could not be reached."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class UnitNotFoundError(RuntimeInvocationError):
    """The named container does not exist."""


class ReadinessTimeoutError(OrchestratorError):
    """A container never answered its readiness endpoint before the deadline."""

    def __init__(self, container_name: str, elapsed: float, polls: int):
        self.container_name = container_name
        self.elapsed = elapsed
        self.polls = polls
        super().__init__(
            f"model failed to become ready within {elapsed:.1f}s "
            f"({polls} polls of {container_name})"
        )


class InferenceError(OrchestratorError):
    """A generate call returned a non-success status or an undecodable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class NoActiveModelError(OrchestratorError):
    """Chat was attempted while no model is running."""

    def __init__(self, message: str = "No model is currently running. Please create a model first."):
        super().__init__(message)


class ActivationError(OrchestratorError):
    """Model activation aborted at a given stage (build, run or start)."""

    _PREFIXES = {
        "build": "Failed to build Docker image",
        "run": "Failed to run Docker container",
        "start": "Model failed to start",
    }

    def __init__(self, stage: str, cause: Exception):
        self.stage = stage
        self.cause = cause
        prefix = self._PREFIXES.get(stage, f"Activation failed during {stage}")
        super().__init__(f"{prefix}: {cause}")
