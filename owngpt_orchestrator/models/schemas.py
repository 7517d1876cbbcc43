"""
Pydantic models for the OwnGPT Orchestrator API.

Defines the current-model record, container descriptors, Ollama wire
payloads and request/response schemas for the HTTP surface.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Lifecycle State Models
# =============================================================================

class ActiveModel(BaseModel):
    """The single process-wide current model.

    Frozen: a change always publishes a new instance.
    """
    model_config = ConfigDict(frozen=True)

    container_name: str = ""
    port: Optional[int] = None
    is_running: bool = False


class ContainerInfo(BaseModel):
    """A model container as reported by Docker."""
    name: str = Field(..., description="Model name recovered from the container name")
    container_name: str
    status: str = Field(default="", description="Docker's free-text status, e.g. 'Up 3 minutes'")
    ports: str = ""
    is_running: bool = False


class AvailableModel(BaseModel):
    """A model that can be requested for activation."""
    name: str
    description: str
    size: str
    official: bool = False


# =============================================================================
# Ollama Wire Models
# =============================================================================

class GenerateOptions(BaseModel):
    """Fixed low-latency generation parameters sent with every prompt."""
    num_predict: int = 250
    temperature: float = 0.2
    top_p: float = 0.7
    top_k: int = 15
    num_ctx: int = 512
    num_batch: int = 128
    num_gpu: int = 1
    low_vram: bool = False
    f16_kv: bool = True
    use_mlock: bool = True
    use_mmap: bool = True
    repeat_penalty: float = 1.05
    tfs_z: float = 0.95


class GenerateRequest(BaseModel):
    """Body of POST /api/generate."""
    model: str
    prompt: str
    stream: bool = False
    options: GenerateOptions = Field(default_factory=GenerateOptions)


class GenerateResponse(BaseModel):
    """A whole response, or one line of a streamed response."""
    model_config = ConfigDict(extra="ignore")

    response: str = ""
    done: bool = False


class StreamChunk(BaseModel):
    """One item delivered to a stream consumer.

    ``final`` marks the trailing chunk that repeats the full text.
    """
    text: str
    final: bool = False


# =============================================================================
# API Models
# =============================================================================

class ActivateRequest(BaseModel):
    """Request to activate (build/start) a model."""
    model: str = Field(default="", description="Model name, e.g. 'mistral' or 'llama2:13b'")


class ActivationResult(BaseModel):
    """Outcome of a successful activation."""
    message: str
    model: str
    container_name: str
    port: int
    already_exists: bool = False


class ChatRequest(BaseModel):
    """Request to send a prompt to the active model."""
    message: str = Field(default="", description="Prompt text")


class ChatResponse(BaseModel):
    """Blocking chat reply."""
    response: str = ""
    error: Optional[str] = None


class SystemInfo(BaseModel):
    """Host capabilities relevant to model containers."""
    gpu_available: bool
    memory_limit: str
    message: str
