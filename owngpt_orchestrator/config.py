"""
Configuration management for OwnGPT Orchestrator.

Loads settings from environment variables and optional YAML config file.
"""

import os
from pathlib import Path
from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings
import yaml


class OrchestratorConfig(BaseSettings):
    """Configuration for the OwnGPT Orchestrator service."""

    # Service settings
    host: str = Field(default="0.0.0.0", description="Host to bind to")
    port: int = Field(default=8080, description="Port to listen on")
    debug: bool = Field(default=False, description="Enable debug mode")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:9090", "http://frontend:9090"],
        description="Origins allowed to call the API from a browser"
    )

    # Logging
    log_dir: Optional[str] = Field(default=None, description="Directory for log files")
    log_level: str = Field(default="INFO", description="Root log level")

    # Build context
    models_dir: Path = Field(
        default=Path("/app/models"),
        description="Directory the Dockerfile is written to before a build"
    )

    # Docker settings
    docker_network: Optional[str] = Field(
        default="owngpt_owngpt-network",
        description="Network shared with model containers so their names resolve"
    )
    container_memory_limit: str = Field(
        default="4g",
        description="Memory ceiling for every model container"
    )
    host_port: int = Field(
        default=11434,
        description="Host port the model container is published on"
    )
    inference_port: int = Field(
        default=11434,
        description="Port Ollama listens on inside every model container"
    )
    gpu_probe_image: str = Field(
        default="hello-world",
        description="Image used for the GPU-enabled trial run"
    )

    # Readiness polling
    poll_interval_seconds: float = Field(
        default=2.0,
        description="Seconds between readiness polls"
    )
    probe_attempt_timeout_seconds: float = Field(
        default=2.0,
        description="HTTP timeout for a single readiness poll"
    )
    start_existing_timeout_seconds: float = Field(
        default=30.0,
        description="Readiness deadline after restarting an existing container"
    )
    activation_timeout_seconds: float = Field(
        default=300.0,
        description="Readiness deadline after building and running a container"
    )
    publish_before_ready: bool = Field(
        default=True,
        description="Publish the new current model before the final readiness probe"
    )

    # Inference
    inference_timeout_seconds: float = Field(
        default=15.0,
        description="HTTP timeout for generate calls"
    )
    inference_max_idle_connections: int = Field(
        default=10,
        description="Keep-alive connections pooled towards model containers"
    )
    inference_idle_timeout_seconds: float = Field(
        default=30.0,
        description="Seconds an idle pooled connection is kept open"
    )
    stream_queue_size: int = Field(
        default=10,
        description="Capacity of the fragment queue between stream producer and consumer"
    )
    sse_heartbeat_seconds: float = Field(
        default=5.0,
        description="Idle seconds before a keep-alive comment is sent on /chat/stream"
    )

    class Config:
        env_prefix = "OWNGPT_"
        env_file = ".env"


def load_yaml_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration from YAML file if it exists."""
    if config_path is None:
        env_path = os.getenv("OWNGPT_CONFIG_FILE")
        if env_path:
            config_path = Path(env_path)
        else:
            config_path = Path(__file__).parent.parent / "config" / "owngpt.yaml"

    if config_path.exists():
        with open(config_path) as f:
            return yaml.safe_load(f) or {}
    return {}


_config: Optional[OrchestratorConfig] = None


def get_config() -> OrchestratorConfig:
    """Get the singleton configuration instance."""
    global _config
    if _config is None:
        # YAML values are defaults only; env vars take precedence
        yaml_config = load_yaml_config()
        env_overrides = {
            key for key in OrchestratorConfig.model_fields
            if f"OWNGPT_{key.upper()}" in os.environ
        }
        _config = OrchestratorConfig(
            **{k: v for k, v in yaml_config.items() if k not in env_overrides}
        )
    return _config


def reset_config() -> None:
    """Reset config singleton (useful for testing)."""
    global _config
    _config = None
